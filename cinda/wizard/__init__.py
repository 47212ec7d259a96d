"""Profile builder wizard."""

from .controller import WizardController, RequestTicket
from .steps import STEP_ORDER

__all__ = [
    'WizardController',
    'RequestTicket',
    'STEP_ORDER',
]
