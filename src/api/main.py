from fastapi import FastAPI
from mangum import Mangum

from api import routers
from core.logging_config import configure_logging

configure_logging()

app = FastAPI(title="Donation Ledger")

@app.get("/")
def read_root():
    return {"message": "Welcome to the Donation Ledger API"}


app.include_router(routers.router)

handler = Mangum(app)
