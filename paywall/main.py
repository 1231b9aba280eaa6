import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paywall.app.errors import PaywallError
from paywall.app.routes.paywall import router as paywall_router
from paywall.app.services.paywall import get_paywall_runtime

logger = logging.getLogger("paywall")

app = FastAPI(title="Paywall API")

# Vite proxy origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(paywall_router)


@app.on_event("startup")
async def bootstrap_paywall() -> None:
    runtime = get_paywall_runtime()
    app.state.paywall = runtime
    try:
        await runtime.bootstrap.initialize()
    except PaywallError as exc:
        # requests retry the bootstrap through the route dependency
        logger.warning("Paywall bootstrap failed at startup: %s (%s)", exc.message, exc.code.value)


@app.get("/health")
async def health() -> dict:
    runtime = get_paywall_runtime()
    return {"status": "ok", "initialized": runtime.bootstrap.is_initialized}
