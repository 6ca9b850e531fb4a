import os
from dotenv import load_dotenv

# Load environment variables if present
load_dotenv()


def _csv(value: str):
    return tuple(item.strip() for item in value.split(",") if item.strip())


DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "schooldb")

JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = list(_csv(os.getenv("CORS_ORIGINS", "*")))

# Result PINs handed to parents on the fee receipt
PIN_LENGTH = int(os.getenv("PIN_LENGTH", "6"))

# Grades that count as a fail in analytics (primary F, secondary F9)
FAILING_GRADES = frozenset(_csv(os.getenv("FAILING_GRADES", "F,F9")))
