"""AI client, prompts, and the synthesis gateway."""

from .client import AIClient, AIStreamEvent, ClientSettings
from .gateway import OpenAISynthesisGateway, SynthesisGateway

__all__ = ["AIClient", "AIStreamEvent", "ClientSettings", "OpenAISynthesisGateway", "SynthesisGateway"]
