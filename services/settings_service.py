"""
Settings Service

Branding and feature toggles edited by the super admin.
"""

from typing import Optional, Dict, Any, Tuple
import logging
from models import AppSettings
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .record_store import RecordStore

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ('app_name', 'app_icon', 'feature_chat', 'feature_reports', 'feature_payments')


class SettingsService:
    """Service class for application settings"""

    def __init__(self, store: Optional[RecordStore] = None):
        self.store = store or RecordStore()
        self.audit_service = AuditService(self.store)

    def get_settings(self) -> AppSettings:
        return self.store.get_settings()

    @TransactionHelper.with_transaction
    def update_settings(self, data: Dict[str, Any], actor) -> Tuple[bool, Optional[str], Optional[AppSettings]]:
        """Apply the given settings fields; fields not present are left unchanged"""
        fields = {name: data[name] for name in SETTINGS_FIELDS if name in data}
        if 'app_name' in fields:
            fields['app_name'] = (fields['app_name'] or '').strip()
            if not fields['app_name']:
                return False, "App name cannot be empty", None

        settings = self.store.update_settings(updated_by=actor.id, **fields)
        self.audit_service.log_action(
            action='update_settings',
            entity_type='app_settings',
            entity_id=settings.id,
            details={name: value for name, value in fields.items()},
            user_id=actor.id
        )
        logger.info(f"Settings updated by user {actor.id}: {sorted(fields)}")
        return True, None, settings
