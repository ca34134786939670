"""Database models.

Importing this package registers every table on Base.metadata.
"""

from db.models.user import User
from db.models.merchant import Prospect, MerchantApplication
from db.models.signature import SignatureCapture
from db.models.action_template import ActionTemplate
from db.models.trigger import TriggerCatalogEntry, TriggerAction
from db.models.action_activity import ActionActivity
from db.models.outbound_message import OutboundMessage
from db.models.user_alert import UserAlert
from db.models.api_key import APIKey

__all__ = [
    "User",
    "Prospect",
    "MerchantApplication",
    "SignatureCapture",
    "ActionTemplate",
    "TriggerCatalogEntry",
    "TriggerAction",
    "ActionActivity",
    "OutboundMessage",
    "UserAlert",
    "APIKey",
]
