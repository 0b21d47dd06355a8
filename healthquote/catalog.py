"""
Health test catalog: read-only lookups used to decorate quote lines.

The catalog is owned by another part of the business system; the ledger only
resolves ids to a display snapshot {id, name, code}.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .errors import NotFound

logger = logging.getLogger("healthquote.catalog")

# Default catalog, seeded on first start when the table is empty
DEFAULT_HEALTH_TESTS = [
    {"name": "EKG (Elektrokardiyogram)", "code": "EKG-001",
     "description": "Kalp elektriksel aktivitesinin ölçümü ve ritim bozukluklarının tespiti"},
    {"name": "Odyometri", "code": "ODY-001",
     "description": "İşitme kaybı ve işitme eşiğinin değerlendirilmesi"},
    {"name": "Akciğer Grafisi", "code": "XRY-001",
     "description": "Göğüs kafesi ve akciğerlerin radyolojik görüntülemesi"},
    {"name": "SFT (Solunum Fonksiyon Testi)", "code": "SFT-001",
     "description": "Akciğer kapasitesi ve solunum fonksiyonlarının değerlendirilmesi"},
    {"name": "Tam Kan Sayımı", "code": "LAB-001",
     "description": "Kan hücrelerinin sayısı ve oranlarının analizi"},
    {"name": "Biyokimya Paneli", "code": "LAB-002",
     "description": "Karaciğer, böbrek fonksiyonları ve metabolik parametreler"},
    {"name": "İdrar Tahlili", "code": "LAB-003",
     "description": "İdrar örneğinin fiziksel, kimyasal ve mikroskobik analizi"},
]


def snapshot(test: Optional[models.HealthTest]) -> Optional[dict]:
    if test is None:
        return None
    return {"id": test.id, "name": test.name, "code": test.code}


class HealthTestCatalog:

    def __init__(self, db: Session):
        self.db = db

    def find(self, test_id: int) -> Optional[models.HealthTest]:
        return self.db.query(models.HealthTest).filter(models.HealthTest.id == test_id).first()

    def get(self, test_id: int) -> dict:
        """Resolve a test id to its snapshot, or raise NotFound."""
        test = self.find(test_id)
        if not test:
            raise NotFound("Health test not found", "HEALTH_TEST_NOT_FOUND")
        return snapshot(test)


def seed_health_tests(db: Session) -> int:
    """Insert the default catalog if no tests exist yet. Returns rows added."""
    if db.query(models.HealthTest).count() > 0:
        return 0
    for data in DEFAULT_HEALTH_TESTS:
        db.add(models.HealthTest(is_active=True, **data))
    db.commit()
    logger.info(f"Seeded {len(DEFAULT_HEALTH_TESTS)} health tests")
    return len(DEFAULT_HEALTH_TESTS)
