"""Suite runners."""

from .bias import BiasTester
from .censorship import CensorshipTester
from .sidechannel import SideChannelScanner

__all__ = ["BiasTester", "CensorshipTester", "SideChannelScanner"]
