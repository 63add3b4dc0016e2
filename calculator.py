"""
Smart-home quote calculator.

A quote is built in four steps: pick a property type, add rooms (each room
starts with the features usual for its type), tweak features and
quantities, then generate device recommendations priced from the static
tables below. Installation is 15% of the device subtotal, never less than
500 EGP.
"""

import logging
import uuid
from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP

logger = logging.getLogger(__name__)

INSTALLATION_RATE = Decimal("0.15")
MIN_INSTALLATION_FEE = 500
DEFAULT_BRAND = "SONOFF"


# ── Price tables ──────────────────────────────────────────────────

PROPERTY_TYPES = {
    "apartment": {"name_en": "Apartment", "name_ar": "شقة", "description": "Residential unit in a building"},
    "villa": {"name_en": "Villa", "name_ar": "فيلا", "description": "Standalone house with garden"},
    "duplex": {"name_en": "Duplex", "name_ar": "دوبلكس", "description": "Two-floor connected apartment"},
    "office": {"name_en": "Office", "name_ar": "مكتب", "description": "Commercial workspace"},
}

ROOM_TYPES = {
    "living_room": {"name_en": "Living Room", "name_ar": "غرفة المعيشة"},
    "bedroom": {"name_en": "Bedroom", "name_ar": "غرفة نوم"},
    "master_bedroom": {"name_en": "Master Bedroom", "name_ar": "غرفة النوم الرئيسية"},
    "kitchen": {"name_en": "Kitchen", "name_ar": "مطبخ"},
    "bathroom": {"name_en": "Bathroom", "name_ar": "حمام"},
    "dining_room": {"name_en": "Dining Room", "name_ar": "غرفة الطعام"},
    "office": {"name_en": "Home Office", "name_ar": "مكتب منزلي"},
    "hallway": {"name_en": "Hallway", "name_ar": "ممر"},
    "entrance": {"name_en": "Entrance", "name_ar": "مدخل"},
    "balcony": {"name_en": "Balcony", "name_ar": "بلكونة"},
    "garden": {"name_en": "Garden", "name_ar": "حديقة"},
    "garage": {"name_en": "Garage", "name_ar": "جراج"},
    "kids_room": {"name_en": "Kids Room", "name_ar": "غرفة أطفال"},
    "guest_room": {"name_en": "Guest Room", "name_ar": "غرفة ضيوف"},
}

# Insertion order is the order features are listed in a room.
FEATURE_TYPES = {
    "smart_lighting": {"name_en": "Smart Lighting", "name_ar": "إضاءة ذكية", "base_price": 500},
    "smart_curtains": {"name_en": "Smart Curtains", "name_ar": "ستائر ذكية", "base_price": 2500},
    "smart_ac": {"name_en": "Smart AC Control", "name_ar": "تحكم تكييف ذكي", "base_price": 800},
    "motion_sensor": {"name_en": "Motion Sensor", "name_ar": "حساس حركة", "base_price": 600},
    "door_sensor": {"name_en": "Door/Window Sensor", "name_ar": "حساس باب/نافذة", "base_price": 500},
    "temperature_sensor": {"name_en": "Temperature Sensor", "name_ar": "حساس حرارة", "base_price": 400},
    "smart_lock": {"name_en": "Smart Lock", "name_ar": "قفل ذكي", "base_price": 3500},
    "camera": {"name_en": "Security Camera", "name_ar": "كاميرا مراقبة", "base_price": 1500},
    "intercom": {"name_en": "Smart Intercom", "name_ar": "انتركم ذكي", "base_price": 4000},
    "smart_plug": {"name_en": "Smart Plug", "name_ar": "مقبس ذكي", "base_price": 350},
    "smart_switch": {"name_en": "Smart Switch", "name_ar": "مفتاح ذكي", "base_price": 800},
    "rgb_lighting": {"name_en": "RGB/Mood Lighting", "name_ar": "إضاءة ملونة", "base_price": 700},
    "water_leak_sensor": {"name_en": "Water Leak Sensor", "name_ar": "حساس تسرب مياه", "base_price": 500},
    "smoke_detector": {"name_en": "Smart Smoke Detector", "name_ar": "كاشف دخان ذكي", "base_price": 800},
    "smart_thermostat": {"name_en": "Smart Thermostat", "name_ar": "ترموستات ذكي", "base_price": 1200},
}

DEFAULT_ROOM_FEATURES = {
    "living_room": ["smart_lighting", "smart_curtains", "smart_ac", "motion_sensor"],
    "bedroom": ["smart_lighting", "smart_curtains", "smart_ac"],
    "master_bedroom": ["smart_lighting", "smart_curtains", "smart_ac", "rgb_lighting"],
    "kitchen": ["smart_lighting", "smart_plug", "smoke_detector", "water_leak_sensor"],
    "bathroom": ["smart_lighting", "water_leak_sensor", "motion_sensor"],
    "dining_room": ["smart_lighting", "smart_curtains"],
    "office": ["smart_lighting", "smart_ac", "smart_plug"],
    "hallway": ["smart_lighting", "motion_sensor"],
    "entrance": ["smart_lighting", "smart_lock", "camera", "intercom", "motion_sensor"],
    "balcony": ["smart_lighting", "camera"],
    "garden": ["smart_lighting", "camera", "motion_sensor"],
    "garage": ["smart_lighting", "camera", "door_sensor"],
    "kids_room": ["smart_lighting", "smart_curtains", "smart_ac", "motion_sensor"],
    "guest_room": ["smart_lighting", "smart_curtains", "smart_ac"],
}

# Catalog search terms used to find a real product for each feature.
FEATURE_PRODUCT_KEYWORDS = {
    "smart_lighting": ["smart bulb", "smart light", "led bulb", "zigbee bulb"],
    "smart_curtains": ["curtain motor", "smart curtain", "blind motor"],
    "smart_ac": ["ir controller", "ac controller", "mini r4"],
    "motion_sensor": ["motion sensor", "pir sensor", "zigbee motion"],
    "door_sensor": ["door sensor", "window sensor", "contact sensor"],
    "temperature_sensor": ["temperature sensor", "temp humidity", "snzb-02"],
    "smart_lock": ["smart lock", "door lock", "fingerprint lock"],
    "camera": ["camera", "security camera", "ip camera"],
    "intercom": ["intercom", "video doorbell", "door phone"],
    "smart_plug": ["smart plug", "zigbee plug", "s26"],
    "smart_switch": ["smart switch", "wall switch", "touch switch", "tx series"],
    "rgb_lighting": ["rgb", "color bulb", "led strip", "nspanel"],
    "water_leak_sensor": ["water leak", "flood sensor", "water sensor"],
    "smoke_detector": ["smoke detector", "smoke sensor", "fire alarm"],
    "smart_thermostat": ["thermostat", "temperature controller"],
}


def _check(kind: str, value: str, table: dict):
    if value not in table:
        raise ValueError(f"Unknown {kind}: {value}")


def _new_id() -> str:
    return uuid.uuid4().hex[:9]


def round_half_up(value) -> int:
    """Round to the nearest integer with halves going up."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def installation_fee(subtotal: float) -> int:
    return max(MIN_INSTALLATION_FEE, round_half_up(Decimal(str(subtotal)) * INSTALLATION_RATE))


# ── Quote building blocks ─────────────────────────────────────────

@dataclass
class RoomFeature:
    type: str
    enabled: bool = False
    quantity: int = 1
    id: str = field(default_factory=_new_id)


@dataclass
class Room:
    type: str
    name: str
    features: list[RoomFeature] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    @classmethod
    def create(cls, room_type: str, name: str, enabled: list[str] | None = None) -> "Room":
        """Build a room listing every feature, enabling ``enabled``
        (the room type's defaults when omitted)."""
        _check("room type", room_type, ROOM_TYPES)
        if enabled is None:
            enabled = DEFAULT_ROOM_FEATURES.get(room_type, [])
        features = [
            RoomFeature(type=feature_type, enabled=feature_type in enabled)
            for feature_type in FEATURE_TYPES
        ]
        return cls(type=room_type, name=name, features=features)

    def enabled_features(self) -> list[RoomFeature]:
        return [f for f in self.features if f.enabled]


@dataclass
class DeviceRecommendation:
    product_id: str
    product_name: str
    brand: str
    price: float
    quantity: int
    room_id: str
    room_name: str
    feature_type: str
    image_url: str | None = None


@dataclass
class FloorPlanAnalysis:
    """Rooms and feature suggestions read off a floor plan."""

    rooms_detected: list[dict] = field(default_factory=list)  # {type, name, count}
    suggested_features: list[dict] = field(default_factory=list)  # {room_type, features}
    estimated_area: float | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "FloorPlanAnalysis":
        """Validate an analysis document, raising ValueError on bad shape."""
        rooms = []
        for detected in data.get("rooms_detected") or []:
            room_type = detected.get("type")
            if not room_type:
                raise ValueError("Detected room is missing its type")
            _check("room type", room_type, ROOM_TYPES)
            try:
                count = int(detected.get("count", 1))
            except (TypeError, ValueError):
                raise ValueError(f"Room count must be a whole number, got {detected.get('count')!r}")
            if count < 1:
                raise ValueError(f"Room count must be at least 1, got {count}")
            rooms.append({
                "type": room_type,
                "name": detected.get("name") or ROOM_TYPES[room_type]["name_en"],
                "count": count,
            })

        suggestions = []
        for suggestion in data.get("suggested_features") or []:
            room_type = suggestion.get("room_type")
            if not room_type:
                raise ValueError("Feature suggestion is missing its room_type")
            _check("room type", room_type, ROOM_TYPES)
            features = list(suggestion.get("features") or [])
            for feature_type in features:
                _check("feature type", feature_type, FEATURE_TYPES)
            suggestions.append({"room_type": room_type, "features": features})

        return cls(
            rooms_detected=rooms,
            suggested_features=suggestions,
            estimated_area=data.get("estimated_area"),
            notes=data.get("notes"),
        )

    def features_for(self, room_type: str) -> list[str] | None:
        for suggestion in self.suggested_features:
            if suggestion["room_type"] == room_type:
                return suggestion["features"]
        return None


# ── Wizard state ──────────────────────────────────────────────────

@dataclass
class QuoteDraft:
    """The calculator wizard's state, steps 1 to 4."""

    step: int = 1
    property_type: str | None = None
    rooms: list[Room] = field(default_factory=list)
    devices: list[DeviceRecommendation] = field(default_factory=list)
    floor_plan_url: str | None = None
    analysis: FloorPlanAnalysis | None = None
    email: str = ""
    phone: str = ""

    def set_property_type(self, property_type: str):
        _check("property type", property_type, PROPERTY_TYPES)
        self.property_type = property_type
        self.step = 2

    def add_room(self, room_type: str, name: str | None = None) -> Room:
        room = Room.create(room_type, name or ROOM_TYPES[room_type]["name_en"])
        self.rooms.append(room)
        return room

    def get_room(self, room_id: str) -> Room:
        for room in self.rooms:
            if room.id == room_id:
                return room
        raise ValueError(f"Room {room_id} not found")

    def remove_room(self, room_id: str):
        self.rooms = [r for r in self.rooms if r.id != room_id]

    def update_room_feature(self, room_id: str, feature_type: str, enabled: bool, quantity: int = 1):
        _check("feature type", feature_type, FEATURE_TYPES)
        if quantity < 1:
            raise ValueError("Feature quantity must be at least 1")
        room = self.get_room(room_id)
        for feature in room.features:
            if feature.type == feature_type:
                feature.enabled = enabled
                feature.quantity = quantity

    def apply_analysis(self, analysis: FloorPlanAnalysis):
        """Replace the rooms with those detected on the floor plan."""
        self.analysis = analysis
        rooms = []
        for detected in analysis.rooms_detected:
            suggested = analysis.features_for(detected["type"])
            if suggested is None:
                suggested = DEFAULT_ROOM_FEATURES.get(detected["type"], [])
            for i in range(detected["count"]):
                name = detected["name"]
                if detected["count"] > 1:
                    name = f"{name} {i + 1}"
                rooms.append(Room.create(detected["type"], name, enabled=suggested))
        self.rooms = rooms
        self.step = 3
        logger.debug("Applied floor plan analysis: %d rooms", len(rooms))

    def generate_devices(self) -> list[DeviceRecommendation]:
        devices = []
        for room in self.rooms:
            for feature in room.enabled_features():
                info = FEATURE_TYPES[feature.type]
                devices.append(DeviceRecommendation(
                    product_id=_new_id(),
                    product_name=info["name_en"],
                    brand=DEFAULT_BRAND,
                    price=float(info["base_price"]),
                    quantity=feature.quantity,
                    room_id=room.id,
                    room_name=room.name,
                    feature_type=feature.type,
                ))
        self.devices = devices
        self.step = 4
        return devices

    @property
    def subtotal(self) -> float:
        return float(sum(d.price * d.quantity for d in self.devices))

    @property
    def installation_fee(self) -> int:
        return installation_fee(self.subtotal)

    @property
    def total(self) -> float:
        return self.subtotal + self.installation_fee

    def to_quote_data(self) -> dict:
        return {
            "property_type": self.property_type,
            "rooms": [asdict(r) for r in self.rooms],
            "devices": [asdict(d) for d in self.devices],
            "subtotal": self.subtotal,
            "installation_fee": self.installation_fee,
            "total": self.total,
            "email": self.email or None,
            "phone": self.phone or None,
            "floor_plan_url": self.floor_plan_url,
            "ai_analysis": asdict(self.analysis) if self.analysis else None,
        }

    def reset(self):
        self.step = 1
        self.property_type = None
        self.rooms = []
        self.devices = []
        self.floor_plan_url = None
        self.analysis = None
        self.email = ""
        self.phone = ""


# ── Matching against the catalog ──────────────────────────────────

@dataclass
class MatchedProduct:
    product: object  # models.Product
    feature_type: str
    room_id: str
    room_name: str
    quantity: int


def best_product_for(device: DeviceRecommendation, products) -> object | None:
    """Pick the in-stock product that best fits ``device``.

    A keyword hit in the product name counts double a hit in the
    description; closer prices to the device's base price score higher.
    """
    keywords = FEATURE_PRODUCT_KEYWORDS.get(device.feature_type, [])
    best, best_score = None, 0.0

    for product in products:
        if product.stock <= 0:
            continue
        name = product.name.lower()
        description = (product.description or "").lower()
        for keyword in keywords:
            if keyword in name or keyword in description:
                price_score = 1 / (1 + abs(product.price - device.price) / device.price)
                score = price_score * (2 if keyword in name else 1)
                if score > best_score:
                    best, best_score = product, score
    return best


def match_products(devices: list[DeviceRecommendation], products) -> list[MatchedProduct]:
    matched = []
    for device in devices:
        product = best_product_for(device, products)
        if product is None:
            logger.debug("No catalog product for %s in %s", device.feature_type, device.room_name)
            continue
        matched.append(MatchedProduct(
            product=product,
            feature_type=device.feature_type,
            room_id=device.room_id,
            room_name=device.room_name,
            quantity=device.quantity,
        ))
    return matched


def matched_totals(matched: list[MatchedProduct]) -> dict:
    subtotal = round(sum(m.product.price * m.quantity for m in matched), 2)
    fee = installation_fee(subtotal)
    return {"subtotal": subtotal, "installation_fee": fee, "total": round(subtotal + fee, 2)}


def group_by_room(matched: list[MatchedProduct]) -> dict[str, list[MatchedProduct]]:
    rooms: dict[str, list[MatchedProduct]] = {}
    for m in matched:
        rooms.setdefault(m.room_id, []).append(m)
    return rooms
