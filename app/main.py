import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from app.database import engine, Base
from app.exceptions import ExchangeError
from app.routes import users, slots, exchanges, admin

logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)

# Create FastAPI app
app = FastAPI(
    title="SlotSwapper API",
    description="Publish time slots, offer them for exchange and negotiate bilateral swaps with other users",
    version="1.0.0"
)

# Include routers
app.include_router(users.router, prefix="/users", tags=["users"])
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(exchanges.router, prefix="/exchanges", tags=["exchanges"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.exception_handler(ExchangeError)
async def exchange_error_handler(request: Request, exc: ExchangeError):
    """Translate engine errors into their HTTP status with kind and reason"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.reason}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Missing or malformed fields are reported as invalid requests"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "invalid_request",
            "detail": "Request body failed validation",
            "errors": jsonable_encoder(exc.errors()),
        },
    )

@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": "SlotSwapper API is running!",
        "version": "1.0.0",
        "endpoints": {
            "register": "POST /users/register - Create a new user",
            "login": "POST /users/login - Login with username and password",
            "refresh": "POST /users/refresh - Refresh access token",
            "slots": "GET /slots/mine, POST /slots/create, PUT /slots/{id}/availability, DELETE /slots/delete/{id}",
            "marketplace": "GET /exchanges/marketplace - Offered slots from other users",
            "exchanges": "POST /exchanges/propose, POST /exchanges/{id}/respond, POST /exchanges/{id}/withdraw",
            "ledger": "GET /exchanges/incoming, GET /exchanges/outgoing"
        },
        "authentication": "Bearer token in Authorization header",
        "swagger_ui": "/docs - Interactive API documentation",
        "redoc": "/redoc - Alternative API documentation"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

# This allows running the app directly with: python -m app.main
if __name__ == "__main__":
    import uvicorn
    print("🚀 Starting SlotSwapper API...")
    print("📖 API Documentation: http://localhost:8000/docs")
    print("🔍 Health Check: http://localhost:8000/health")
    # Use import string format for reload to work
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
