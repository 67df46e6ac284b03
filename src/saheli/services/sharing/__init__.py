"""Location sharing sessions"""

from .session_controller import (
    SharingSessionController, SharingState, SharingStartResult, DestinationResult
)

__all__ = ['SharingSessionController', 'SharingState', 'SharingStartResult', 'DestinationResult']
