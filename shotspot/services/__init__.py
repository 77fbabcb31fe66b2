"""
Services package for ShotSpot.
"""

from .registration_sync import RegistrationSyncService, SyncResult, ExternalPlayer

__all__ = ['RegistrationSyncService', 'SyncResult', 'ExternalPlayer']
