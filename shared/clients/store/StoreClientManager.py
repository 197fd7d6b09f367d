from shared.helper.HelperConfig import HelperConfig
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.models.errors import ConfigurationError


class StoreClientManager:
    """
    Manager class to handle the Store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the Store engine from ENV configuration (STORE_ENGINE, default "neo4j").

        Returns:
            str: The capitalised name of the Store engine.
        """
        engine = self.helper_config.get_string_val("STORE_ENGINE", default="neo4j")
        engine = engine.strip().lower()
        engine = engine.capitalize()
        return engine

    def _initialize_client(self) -> StoreClientInterface:
        """
        Initializes the Store client based on the engine specified in the configuration.

        Returns:
            StoreClientInterface: An instance of the Store client.

        Raises:
            ConfigurationError: If the engine is unsupported or its configuration is incomplete.
        """
        engine = self._get_engine_from_env()
        className = f"StoreClient{engine}"
        try:
            module = __import__(
                f"shared.clients.store.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Unsupported Store engine specified: '{engine}'. Error: {e}", hint="Set STORE_ENGINE to neo4j or memory.")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Store client for engine: %s", engine)
        return client

    def get_client(self) -> StoreClientInterface:
        """
        Returns the instantiated Store client.
        """
        return self.client
