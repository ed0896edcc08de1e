import logging
from fastapi import FastAPI
from config import API_TITLE, API_VERSION, HOST, PORT, LOG_LEVEL
from database import init_database
from auth import jwt_middleware
from routers import (appointments_router, auth_router, consultations_router, documents_router,
                     lab_router, patients_router, pharmacies_router, prescriptions_router,
                     roles_router, users_router)

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=API_TITLE, version=API_VERSION)

# Initialize database on startup
init_database()

# Add middleware
app.middleware("http")(jwt_middleware)

# Include routers
app.include_router(auth_router.router)
app.include_router(users_router.router)
app.include_router(roles_router.router)
app.include_router(patients_router.router)
app.include_router(appointments_router.router)
app.include_router(consultations_router.router)
app.include_router(prescriptions_router.router)
app.include_router(pharmacies_router.router)
app.include_router(lab_router.router)
app.include_router(documents_router.router)

# Root endpoint
@app.get("/")
def root():
    return {
        "message": "CareFlow EHR API",
        "docs": "/docs",
        "endpoints": {
            "login": "POST /auth/login",
            "refresh": "POST /auth/refresh-token",
            "current_user": "GET /auth/me",
            "permissions": "GET /users/me/permissions",
            "navigation": "GET /users/me/navigation",
            "roles": "GET /roles",
            "patients": "/patients",
            "appointments": "/appointments",
            "consultations": "/consultations",
            "prescriptions": "/prescriptions",
            "pharmacies": "/pharmacies",
            "lab_orders": "/lab/orders",
            "lab_results": "/lab/results",
            "documents": "/documents",
        },
    }

if __name__ == "__main__":
    import uvicorn
    logger.info("Starting %s on %s:%s", API_TITLE, HOST, PORT)
    uvicorn.run("main:app", host=HOST, port=PORT, reload=True)
