"""Seed database with demo data."""
from datetime import datetime, timedelta, timezone
import uuid

from app.auth import get_password_hash
from app.database import SessionLocal, init_db
from app.models import ProcessStage, Product, Task, Tenant, User
from app.services.task_state import iso_week_label


def seed():
    """Seed database with a super admin and one approved demo factory."""
    init_db()
    db = SessionLocal()

    try:
        super_admin = User(
            id=uuid.UUID('00000000-0000-0000-0000-000000000001'),
            auto_id='ADM001-0000',
            name='Platform Administrator',
            email='superadmin@workmint.local',
            mobile='+910000000000',
            password_hash=get_password_hash('superadmin123'),
            role='super_admin',
            tenant_id=None,
        )
        db.add(super_admin)

        tenant = Tenant(
            id=uuid.UUID('00000000-0000-0000-0000-000000000010'),
            factory_name='Demo Textiles',
            address='Plot 12, Industrial Estate, Coimbatore',
            workers_count=120,
            owner_email='owner@demotextiles.local',
            phone='+910000000001',
            status='active',
            approved_at=datetime.now(timezone.utc),
        )
        db.add(tenant)
        db.flush()

        users_data = [
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000101'),
                'auto_id': 'ADM001-0001',
                'name': 'Demo Textiles Admin',
                'email': 'admin@demotextiles.local',
                'password': 'admin123',
                'role': 'factory_admin',
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000102'),
                'auto_id': 'SUP001-0002',
                'name': 'Ravi Kumar',
                'email': 'sup001-0002@demo.local',
                'password': 'supervisor123',
                'role': 'supervisor',
            },
            {
                'id': uuid.UUID('00000000-0000-0000-0000-000000000103'),
                'auto_id': 'EMP001-0003',
                'name': 'Priya Sharma',
                'email': 'emp001-0003@demo.local',
                'password': 'employee123',
                'role': 'employee',
            },
        ]

        users = []
        for user_data in users_data:
            password = user_data.pop('password')
            user = User(
                tenant_id=tenant.id,
                mobile='+910000000002',
                password_hash=get_password_hash(password),
                **user_data,
            )
            db.add(user)
            users.append(user)
        db.flush()

        product = Product(tenant_id=tenant.id, name='Cotton Shirt', description='Half-sleeve cotton shirt')
        db.add(product)
        db.flush()

        stages = []
        for order, name in enumerate(['Cutting', 'Stitching', 'Finishing'], start=1):
            stage = ProcessStage(tenant_id=tenant.id, product_id=product.id, name=name, order=order)
            db.add(stage)
            stages.append(stage)
        db.flush()

        deadline = datetime.now(timezone.utc) + timedelta(days=5)
        db.add(Task(
            tenant_id=tenant.id,
            employee_id=users[2].id,
            product_id=product.id,
            process_stage_id=stages[1].id,
            target_qty=50,
            completed_qty=0,
            status='active',
            deadline=deadline,
            deadline_week=iso_week_label(deadline),
            assigned_by=users[1].id,
            assigned_at=datetime.now(timezone.utc),
        ))

        db.commit()
        print("Database seeded successfully!")
        print("\nDemo logins:")
        print("  superadmin@workmint.local / superadmin123 (super admin, email)")
        print("  admin@demotextiles.local / admin123 (factory admin, email)")
        print("  SUP001-0002 / supervisor123 (supervisor, autoId)")
        print("  EMP001-0003 / employee123 (employee, autoId)")

    except Exception as e:
        db.rollback()
        print(f"Error seeding database: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
