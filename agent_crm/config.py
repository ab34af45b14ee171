import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    DATA_DIR = os.environ.get("CRM_DATA_DIR", os.path.join(BASE_DIR, 'data'))

    GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-pro")
    GEMINI_API_URL = os.environ.get(
        "GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta/models")
    GEMINI_TIMEOUT = float(os.environ.get("GEMINI_TIMEOUT", "30"))

    HOST = os.environ.get("HOST", "0.0.0.0")
    PORT = int(os.environ.get("PORT", "4500"))
