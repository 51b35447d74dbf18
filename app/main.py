from fastapi import FastAPI

from app.log import configure_logging
from app.routers import actions
from app.security.headers import install_api_headers

configure_logging()

app = FastAPI(title='Inventory Task API')

install_api_headers(app)

app.include_router(actions.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
