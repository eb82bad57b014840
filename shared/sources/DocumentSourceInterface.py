from abc import ABC, abstractmethod
import asyncio
from typing import AsyncIterator

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.ingestion import DocumentInfo, make_reference_prefix


class DocumentSourceInterface(ABC):
    """A collection of documents that can be enumerated lazily.

    Every call to iter_documents re-enumerates the source from the start.
    """

    def __init__(self, helper_config: HelperConfig, supported_extensions: list[str] | None = None):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._supported_extensions = supported_extensions
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Validates that all required configuration values for the source are set.

        Raises:
            ConfigurationError: If any required configuration value is missing or invalid.
        """
        for config in self._get_required_config():
            _ = self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_engine_name(self) -> str:
        """
        Returns the name of the source engine in lowercase. E.g. "filesystem"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        pass

    @abstractmethod
    def get_reference(self) -> str:
        """
        Returns the stable reference of the source. It prefixes every document reference of the source.
        """
        pass

    @abstractmethod
    def get_description(self) -> str:
        """
        Returns a human readable description of the source.
        """
        pass

    def get_reference_prefix(self) -> str:
        return make_reference_prefix(self.get_reference())

    def _get_config_key_name(self, raw_key: str) -> str:
        return f"SOURCE_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default=None, val_type: str = "string"):
        key = self._get_config_key_name(raw_key)
        if val_type == "number":
            return self._helper_config.get_number_val(key, default=default)
        elif val_type == "bool":
            return self._helper_config.get_bool_val(key, default=default)
        elif val_type == "list":
            return self._helper_config.get_list_val(key, default=default)
        return self._helper_config.get_string_val(key, default=default)

    ##########################################
    ############# ENUMERATION ################
    ##########################################

    @abstractmethod
    def iter_documents(self, cancel_event: asyncio.Event | None = None) -> AsyncIterator[DocumentInfo]:
        """Lazily enumerate the documents of the source.

        Args:
            cancel_event (asyncio.Event | None): Stops the enumeration between documents once set.

        Yields:
            DocumentInfo: One document at a time.
        """
        pass
