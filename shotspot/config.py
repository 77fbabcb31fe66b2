import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Backend configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///shotspot.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # External registration system (Twizzit, operated for the KBKB federation)
    REGISTRATION_SYSTEM_NAME = os.getenv('REGISTRATION_SYSTEM_NAME', 'Twizzit')
    FEDERATION_NAME = os.getenv('FEDERATION_NAME', 'KBKB')

    # When a player who is already registered gets another mapping,
    # overwrite verified_at with the new link time
    REFRESH_VERIFIED_AT_ON_RELINK = os.getenv('REFRESH_VERIFIED_AT_ON_RELINK', 'False').lower() == 'true'

    # Roles allowed to submit or edit game rosters
    ROSTER_EDITOR_ROLES = os.getenv('ROSTER_EDITOR_ROLES', 'admin,coach')

    # Jersey number bounds (korfball shirts are 1-99)
    MIN_JERSEY_NUMBER = 1
    MAX_JERSEY_NUMBER = 99

    @classmethod
    def get_roster_editor_roles(cls):
        """Get the set of roles allowed to edit rosters"""
        roles = {role.strip().lower() for role in cls.ROSTER_EDITOR_ROLES.split(',') if role.strip()}
        if not roles:
            raise ValueError("ROSTER_EDITOR_ROLES must name at least one role")
        return roles

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if not cls.REGISTRATION_SYSTEM_NAME:
            raise ValueError("REGISTRATION_SYSTEM_NAME is required")
        if not cls.FEDERATION_NAME:
            raise ValueError("FEDERATION_NAME is required")
        cls.get_roster_editor_roles()
