from sqlalchemy import select

from aqualink.config import settings
from aqualink.db import SessionLocal, init_db
from aqualink.models import BranchOrder, OrderStatus
from aqualink.services.factory_waste_bin_service import get_or_create_main_bin
from aqualink.services.inventory_service import initialize_sample_data


def seed() -> None:
    init_db()
    with SessionLocal() as db:
        result = initialize_sample_data(db)
        get_or_create_main_bin(db)

        for branch_name, branch_id in settings.branch_id_by_name.items():
            existing = db.execute(select(BranchOrder).where(BranchOrder.branch_id == branch_id)).scalars().first()
            if not existing:
                db.add(BranchOrder(branch_id=branch_id, branch_name=branch_name, status=OrderStatus.PENDING))

        db.commit()
    print(f"Sample inventory: created={result['created']}, skipped={result['skipped']}")


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
