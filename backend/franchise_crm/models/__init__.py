from .auth import AuthIdentity, SessionToken
from .branches import Branch
from .profiles import Profile, ApprovalHistory
from .invitations import Invitation
from .security import SecurityEvent

__all__ = [
    'AuthIdentity', 'SessionToken',
    'Branch',
    'Profile', 'ApprovalHistory',
    'Invitation',
    'SecurityEvent',
]
