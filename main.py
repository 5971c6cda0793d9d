import uvicorn

from app.core.config import settings

# Punto de entrada local; la aplicación vive en app/main.py
if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG_MODE)
