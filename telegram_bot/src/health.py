"""
Health check endpoint
"""

from fastapi import FastAPI

app = FastAPI(
    title="E-Pay Telegram Bot",
    version="1.0.0",
    description="Liveness endpoint of the payment bot"
)


@app.get("/health")
async def health_check():
    """Liveness probe"""
    return {"status": "ok"}
