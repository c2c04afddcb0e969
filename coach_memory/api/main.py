"""Main FastAPI application and server startup."""

from fastapi import FastAPI, Depends
import uvicorn

from coach_memory import __version__
from coach_memory.memory.integrate import MemoryIntegration
from .memory import router as memory_router, get_memory_integration
from .schemas import HealthResponse

app = FastAPI(
    title="Coach Memory API",
    description="Per-user long-term memory for a coaching agent",
    version=__version__,
)

# Include memory router
app.include_router(memory_router)


@app.get("/", response_model=dict)
async def root():
    """Root endpoint."""
    return {
        "message": "Coach Memory API is running",
        "version": __version__,
    }


@app.get("/health", response_model=HealthResponse)
def health(memory: MemoryIntegration = Depends(get_memory_integration)):
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=__version__,
        components={
            "store": memory.store.memory_dir.is_dir(),
            "judge": memory.policy.judge is not None,
        },
    )


def run():
    """Run the development server."""
    uvicorn.run("coach_memory.api.main:app", host="0.0.0.0", port=8000, reload=True)


if __name__ == "__main__":
    run()
