from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.src import schemas
from app.src.constants import API_TITLE, API_VERSION
from app.api.controller import app_functions, app_finance, app_fieldops


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/functions", app_functions, "Functions API")
app.mount("/finance", app_finance, "Finance API")
app.mount("/fieldops", app_fieldops, "Field Operations API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
