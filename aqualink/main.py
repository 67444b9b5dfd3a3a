from fastapi import FastAPI

from aqualink.errors import install_error_handlers
from aqualink.logging_config import configure_logging
from aqualink.routers import branch_inventory, emergency, factory_waste_bin, inventory, orders, reports

configure_logging()

app = FastAPI(title='AquaLink Operations')

install_error_handlers(app)

app.include_router(orders.router)
app.include_router(inventory.router)
app.include_router(branch_inventory.router)
app.include_router(factory_waste_bin.router)
app.include_router(emergency.router)
app.include_router(reports.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
