"""
SafawiNet Server - Database Manager

This module manages database connection, initialization, and password hashing.
"""

import logging
import secrets
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
import bcrypt

from models.database import Base, User, RoleTemplate, Setting
from permission_rules import PAGE_ACTIONS

logger = logging.getLogger(__name__)


# Runtime-tunable values, stored as strings in the settings table
DEFAULT_SETTINGS = {
    "jwt_expiration_hours": "24",
    "remember_me_days": "7",
    "max_failed_login_attempts": "5",
    "lockout_minutes": "30",
    "max_sessions": "5",
}

DEFAULT_ROLE_TEMPLATES = [
    {
        "name": "Administrator",
        "description": "Full access to every page and action",
        "icon": "FiShield",
        "color": "bg-gradient-to-r from-red-500 to-pink-500",
        "is_admin": True,
        "permissions": [{"page": page, "actions": list(actions)} for page, actions in PAGE_ACTIONS.items()],
    },
    {
        "name": "Manager",
        "description": "Manages users and reviews their own activity",
        "icon": "FiUsers",
        "color": "bg-gradient-to-r from-purple-500 to-indigo-500",
        "is_admin": False,
        "permissions": [
            {"page": "users", "actions": ["view", "add", "edit", "export"]},
            {"page": "audit-logs", "actions": ["view_own"]},
        ],
    },
    {
        "name": "Viewer",
        "description": "Read-only access to the users they created and their own logs",
        "icon": "FiEye",
        "color": "bg-gradient-to-r from-green-500 to-emerald-500",
        "is_admin": False,
        "permissions": [
            {"page": "users", "actions": ["view_own"]},
            {"page": "audit-logs", "actions": ["view_own"]},
        ],
    },
    {
        "name": "Auditor",
        "description": "Reviews and exports the full audit trail",
        "icon": "FiFileText",
        "color": "bg-gradient-to-r from-yellow-500 to-orange-500",
        "is_admin": False,
        "permissions": [
            {"page": "audit-logs", "actions": ["view", "export"]},
        ],
    },
]


class DatabaseManager:
    """
    Manages database connection, initialization, and password hashing
    """

    def __init__(self, db_path: str = "database/safawinet.db", bcrypt_rounds: int = 12):
        """
        Initialize database manager

        Args:
            db_path: Path to SQLite database file
            bcrypt_rounds: bcrypt cost factor used for new password hashes
        """
        self.db_path = db_path
        self.bcrypt_rounds = bcrypt_rounds

        # Ensure database directory exists
        db_dir = Path(db_path).parent
        if db_dir and str(db_dir) != '.':
            db_dir.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{db_path}",
            echo=False,
            connect_args={"check_same_thread": False}
        )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def InitializeDatabase(self) -> Optional[str]:
        """
        Initialize the database with all tables and default data
        Creates tables if they don't exist, populates default settings and
        role templates, and creates the main admin user on first run.

        Returns:
            str: Generated admin password if admin user was created, None otherwise
        """
        Base.metadata.create_all(bind=self.engine)

        session = self.SessionLocal()
        admin_password = None

        try:
            is_first_run = session.query(User).count() == 0

            self.PopulateDefaultSettings(session)
            self.PopulateDefaultRoleTemplates(session)

            if is_first_run:
                admin_password = self.GenerateRandomPassword()
                now = datetime.now(timezone.utc)
                admin_user = User(
                    username="admin",
                    email="admin@safawinet.local",
                    first_name="System",
                    last_name="Administrator",
                    password_hash=self.HashPassword(admin_password),
                    role="admin",
                    is_admin=True,
                    permissions=[],
                    is_active=True,
                    created_at=now,
                    password_last_changed=now
                )
                session.add(admin_user)
                logger.info("Created default admin user")

            session.commit()

        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        return admin_password

    def PopulateDefaultSettings(self, session):
        """
        Populate default runtime settings
        Only adds settings that don't already exist

        Args:
            session: SQLAlchemy session
        """
        for key, value in DEFAULT_SETTINGS.items():
            existing = session.query(Setting).filter(Setting.key == key).first()
            if not existing:
                session.add(Setting(key=key, value=value))
                logger.info(f"Added default setting: {key} = {value}")

    def PopulateDefaultRoleTemplates(self, session):
        """
        Populate the built-in role templates
        Only adds templates whose name is not already taken by a default template

        Args:
            session: SQLAlchemy session
        """
        for template_config in DEFAULT_ROLE_TEMPLATES:
            existing = session.query(RoleTemplate).filter(
                RoleTemplate.name == template_config["name"],
                RoleTemplate.is_default == True  # noqa: E712
            ).first()
            if existing:
                continue

            session.add(RoleTemplate(
                name=template_config["name"],
                description=template_config["description"],
                icon=template_config["icon"],
                color=template_config["color"],
                is_admin=template_config["is_admin"],
                permissions=template_config["permissions"],
                is_default=True,
                is_active=True
            ))
            logger.info(f"Added default role template: {template_config['name']}")

    def GetSettingInt(self, key: str, session=None) -> int:
        """
        Read an integer runtime setting

        Args:
            key: Setting key
            session: Optional open session (a new one is opened otherwise)

        Returns:
            int: Stored value, or the built-in default when missing or malformed
        """
        own_session = session is None
        if own_session:
            session = self.GetSession()

        try:
            setting = session.query(Setting).filter(Setting.key == key).first()
            try:
                return int(setting.value) if setting else int(DEFAULT_SETTINGS[key])
            except ValueError:
                logger.warning(f"Setting '{key}' has non-integer value '{setting.value}', using default")
                return int(DEFAULT_SETTINGS[key])
        finally:
            if own_session:
                session.close()

    @staticmethod
    def GenerateRandomPassword(length: int = 16) -> str:
        """
        Generate a secure random password that satisfies the password policy

        Args:
            length: Password length (default 16)

        Returns:
            str: Generated password
        """
        alphabet = string.ascii_letters + string.digits + "@$!%*?&"
        required = [
            secrets.choice(string.ascii_uppercase),
            secrets.choice(string.ascii_lowercase),
            secrets.choice(string.digits),
            secrets.choice("@$!%*?&"),
        ]
        rest = [secrets.choice(alphabet) for _ in range(length - len(required))]
        characters = required + rest
        secrets.SystemRandom().shuffle(characters)
        return ''.join(characters)

    def HashPassword(self, password: str) -> str:
        """
        Hash a password using bcrypt
        Truncates to 72 bytes to comply with bcrypt's maximum password length

        Args:
            password: Plain text password

        Returns:
            str: Hashed password (as string)
        """
        password_bytes = password.encode('utf-8')[:72]
        hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=self.bcrypt_rounds))
        return hashed.decode('utf-8')

    @staticmethod
    def VerifyPassword(plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash

        Args:
            plain_password: Plain text password to verify
            hashed_password: Stored password hash (as string)

        Returns:
            bool: True if password matches, False otherwise
        """
        password_bytes = plain_password.encode('utf-8')[:72]
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))

    def GetSession(self):
        """
        Get a new database session

        Returns:
            Session: SQLAlchemy session
        """
        return self.SessionLocal()
