# Configuration settings for the CareFlow EHR API
import os

# JWT Configuration
SECRET_KEY = os.environ.get("CAREFLOW_SECRET_KEY", "careflow-secret-key")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("CAREFLOW_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.environ.get("CAREFLOW_REFRESH_TOKEN_EXPIRE_DAYS", "7"))
REFRESH_COOKIE_NAME = "refresh_token"
REFRESH_COOKIE_PATH = "/auth"

# Password hashing
PASSWORD_SALT = os.environ.get("CAREFLOW_PASSWORD_SALT", "careflow_salt")

# Database Configuration
DATABASE_PATH = os.environ.get("CAREFLOW_DATABASE_PATH", "careflow.db")
SEED_DEFAULT_USERS = os.environ.get("CAREFLOW_SEED_DEFAULT_USERS", "true").lower() == "true"
DATABASE_TIMEOUT = float(os.environ.get("CAREFLOW_DATABASE_TIMEOUT", "30"))

# Default accounts, one per role: (username, password, role, first_name, last_name)
DEFAULT_USERS = [
    ("admin", "admin123", "admin", "System", "Admin"),
    ("doctor1", "doctor123", "doctor", "Sarah", "Smith"),
    ("nurse1", "nurse123", "nurse", "Maria", "Garcia"),
    ("secretary1", "secretary123", "secretary", "Paul", "Martin"),
    ("patient1", "patient123", "patient", "John", "Doe"),
    ("pharmacist1", "pharmacist123", "pharmacist", "Lina", "Haddad"),
    ("labtech1", "labtech123", "lab_technician", "Omar", "Benali"),
]

# Logging
LOG_LEVEL = os.environ.get("CAREFLOW_LOG_LEVEL", "INFO").upper()

# API Configuration
API_TITLE = "CareFlow EHR API"
API_VERSION = "1.0.0"
HOST = os.environ.get("CAREFLOW_HOST", "127.0.0.1")
PORT = int(os.environ.get("CAREFLOW_PORT", "8000"))

# API client
API_BASE_URL = os.environ.get("CAREFLOW_API_BASE_URL", f"http://{HOST}:{PORT}")
API_TIMEOUT = float(os.environ.get("CAREFLOW_API_TIMEOUT", "30"))
