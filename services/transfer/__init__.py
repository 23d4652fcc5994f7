"""
=====================================================
Call Transfer Relay - Transfer Services
=====================================================
"""

from .call_registry import (
    CallLeg,
    CallRole,
    CallStateRegistry,
    CallStatus,
    FAILURE_STATUSES,
    MAX_ACTIVE_CUSTOMER_CALLS,
    NO_ACTIVE_CALL,
)
from .directory import Department, DepartmentDirectory
from .errors import (
    CustomerUpdateFailed,
    DepartmentDialFailed,
    NoActiveCall,
    TransferError,
    UpstreamConnectorFailed,
)
from .orchestrator import (
    TransferOrchestrator,
    TransferRequest,
    TransferResult,
    close_orchestrator,
    create_orchestrator,
    get_orchestrator,
)

__all__ = [
    'CallLeg',
    'CallRole',
    'CallStateRegistry',
    'CallStatus',
    'FAILURE_STATUSES',
    'MAX_ACTIVE_CUSTOMER_CALLS',
    'NO_ACTIVE_CALL',
    'Department',
    'DepartmentDirectory',
    'CustomerUpdateFailed',
    'DepartmentDialFailed',
    'NoActiveCall',
    'TransferError',
    'UpstreamConnectorFailed',
    'TransferOrchestrator',
    'TransferRequest',
    'TransferResult',
    'close_orchestrator',
    'create_orchestrator',
    'get_orchestrator',
]
