from shared.exceptions import ConfigurationError
from shared.helper.HelperConfig import HelperConfig
from shared.sources.DocumentSourceInterface import DocumentSourceInterface


class DocumentSourceManager:
    """
    Manager class to handle multiple document sources based on configuration.
    """

    def __init__(self, helper_config: HelperConfig, supported_extensions: list[str] | None = None):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self._supported_extensions = supported_extensions
        self.sources = self._initialize_sources()

    def _get_engines_from_env(self) -> list[str]:
        """
        Reads the list of source engines from ENV configuration, e.g. SOURCE_ENGINES="[filesystem]".

        Raises:
            ConfigurationError: If no source engines are specified in the configuration.
        """
        engines = self.helper_config.get_list_val("SOURCE_ENGINES")
        if not engines:
            raise ConfigurationError("No document source engines specified in configuration.")
        return [engine.strip().lower().capitalize() for engine in engines]

    def _initialize_sources(self) -> list[DocumentSourceInterface]:
        """
        Raises:
            ConfigurationError: If an engine is unsupported.
        """
        sources = []
        for engine in self._get_engines_from_env():
            className = f"DocumentSource{engine}"
            try:
                module = __import__(
                    f"shared.sources.{engine.lower()}.{className}",
                    fromlist=[className],
                )
                source_class = getattr(module, className)
            except (ImportError, AttributeError) as e:
                raise ConfigurationError(f"Unsupported document source engine specified: '{engine}'. Error: {e}")
            sources.append(source_class(helper_config=self.helper_config, supported_extensions=self._supported_extensions))
            self.logging.debug("Instantiated document source for engine: %s", engine)
        return sources

    def get_sources(self) -> list[DocumentSourceInterface]:
        return self.sources
