"""Script to create the initial admin user."""
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inventaris.auth import get_password_hash
from inventaris.database import Base, SessionLocal, engine
from inventaris.models.user import User, UserRole, UserStatus


def create_admin():
    """Create initial admin user if none exists."""
    Base.metadata.create_all(bind=engine)

    email = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@sekolah.sch.id")
    password = os.environ.get("DEFAULT_ADMIN_PASSWORD", "admin123")

    db = SessionLocal()
    try:
        admin = db.query(User).filter(User.role == UserRole.ADMIN).first()
        if admin:
            print(f"Admin user already exists: {admin.email}")
            return

        admin_user = User(
            name="Administrator",
            email=email,
            hashed_password=get_password_hash(password),
            role=UserRole.ADMIN,
            status=UserStatus.ACTIVE,
        )
        db.add(admin_user)
        db.commit()
        print("Admin user created successfully!")
        print(f"Email: {email}")
        print("\nPlease change the password after first login!")
    finally:
        db.close()


if __name__ == "__main__":
    create_admin()
