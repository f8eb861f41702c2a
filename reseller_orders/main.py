from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from reseller_orders.config import settings
from reseller_orders.logging_config import setup_logging
from reseller_orders.routers import orders

setup_logging(settings.log_level, settings.log_dir)

app = FastAPI(title='Reseller Orders')

app.include_router(orders.router)


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
