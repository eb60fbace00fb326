"""
Client-side playback gating: access checks on node entry, unlock flow, decision countdown.
"""
from storygate.player.access import AccessChecker, CoordinatorAccessChecker
from storygate.player.client import HttpAccessChecker
from storygate.player.gate import GateState, PlaybackGate, default_option

__all__ = [
    "AccessChecker",
    "CoordinatorAccessChecker",
    "GateState",
    "HttpAccessChecker",
    "PlaybackGate",
    "default_option",
]
