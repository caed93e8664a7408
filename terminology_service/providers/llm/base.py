from abc import ABC, abstractmethod
from typing import Optional

class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        **kwargs
    ) -> str:
        """
        Generate completion from prompt.

        Args:
            prompt: User prompt
            system: Optional system instruction
            json_mode: Ask the model to answer with a single JSON object
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return provider identifier"""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Return model name"""
        pass
