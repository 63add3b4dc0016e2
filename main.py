"""
Baytzaki: smart-home storefront API (FastAPI).

Run:
    pip install -e .
    SECRET_KEY=... ADMIN_PASSWORD=... python main.py
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admin_routes import router as admin_router
from auth import ensure_admin
from models import init_db, SessionLocal, Category, Product
from routes import router, health_router
from utils import get_config, configure_logging, slugify

logger = logging.getLogger(__name__)

config = get_config()
configure_logging(config["log_level"])

app = FastAPI(title="Baytzaki", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=config["cors_origins"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health_router)
app.include_router(router)
app.include_router(admin_router)


# ── Seed data ─────────────────────────────────────────────────────

CATEGORIES = [
    ("Smart Lighting", "Bulbs, strips and dimmers"),
    ("Security", "Cameras, locks and intercoms"),
    ("Sensors", "Motion, door, leak and climate sensors"),
    ("Switches & Plugs", "Wall switches, relays and smart plugs"),
    ("Climate", "AC controllers and thermostats"),
]

PRODUCTS = [
    # (category, name, brand, protocol, price, stock, featured)
    ("Smart Lighting", "SONOFF B05-BL Smart Bulb RGB", "SONOFF", "WiFi", 450.0, 80, True),
    ("Smart Lighting", "SONOFF L3 Pro RGB LED Strip 5m", "SONOFF", "WiFi", 850.0, 40, False),
    ("Security", "SONOFF CAM Slim Security Camera", "SONOFF", "WiFi", 1450.0, 25, True),
    ("Security", "Aqara U100 Smart Lock", "Aqara", "Zigbee", 6900.0, 10, True),
    ("Security", "Tuya Video Doorbell Intercom", "Tuya", "WiFi", 3800.0, 12, False),
    ("Sensors", "SONOFF SNZB-03 Zigbee Motion Sensor", "SONOFF", "Zigbee", 550.0, 60, False),
    ("Sensors", "SONOFF SNZB-04 Door Sensor", "SONOFF", "Zigbee", 480.0, 70, False),
    ("Sensors", "SONOFF SNZB-02 Temperature Sensor", "SONOFF", "Zigbee", 420.0, 50, False),
    ("Sensors", "Aqara Water Leak Sensor", "Aqara", "Zigbee", 650.0, 35, False),
    ("Sensors", "Tuya Smart Smoke Detector", "Tuya", "WiFi", 790.0, 30, False),
    ("Switches & Plugs", "SONOFF S26 Smart Plug", "SONOFF", "WiFi", 380.0, 100, False),
    ("Switches & Plugs", "SONOFF TX Series Smart Switch 2-Gang", "SONOFF", "WiFi", 950.0, 45, True),
    ("Climate", "SONOFF iFan IR Controller for AC", "SONOFF", "WiFi", 780.0, 40, False),
    ("Climate", "Tuya Smart Thermostat", "Tuya", "WiFi", 1350.0, 20, False),
    ("Climate", "Zemismart Curtain Motor", "Zemismart", "Zigbee", 2700.0, 15, False),
]


def seed():
    """Insert demo data if the database is empty."""
    db = SessionLocal()
    try:
        if config["admin_password"]:
            ensure_admin(db, config["admin_username"], config["admin_password"])

        if db.query(Product).count() > 0:
            return  # already seeded

        categories = {}
        for name, description in CATEGORIES:
            categories[name] = Category(name=name, slug=slugify(name), description=description)
        db.add_all(categories.values())
        db.flush()

        db.add_all([
            Product(
                name=name,
                slug=slugify(name),
                description=f"{brand} {protocol} device",
                brand=brand,
                protocol=protocol,
                price=price,
                stock=stock,
                featured=featured,
                category_id=categories[category].id,
            )
            for category, name, brand, protocol, price, stock, featured in PRODUCTS
        ])
        db.commit()
        logger.info("Seeded database with %d categories and %d products", len(CATEGORIES), len(PRODUCTS))
    finally:
        db.close()


# ── Startup ───────────────────────────────────────────────────────

@app.on_event("startup")
def on_startup():
    init_db()
    seed()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=config["debug"])
