import logging
from fastapi import FastAPI
from release_grouping.api.router import api_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(title="Storefront Release Grouping")

app.include_router(api_router)

@app.get("/")
def root():
    return {"status": "running", "message": "Storefront Release Grouping"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}
