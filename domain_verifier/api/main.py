from fastapi import FastAPI

from domain_verifier.api.routes.telemetry import router as telemetry_router
from domain_verifier.api.routes.verification import router as verification_router

app = FastAPI(title="Domain Verification API")


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(verification_router)
app.include_router(telemetry_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "domain_verifier.api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
