from abc import abstractmethod

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import ConfigurationError, RemoteRequestError
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)

        # model and embedding config
        self.embed_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_MODEL", default=None)
        self.vector_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_VECTOR_SIZE", default=1536))
        self.batch_size = int(helper_config.get_number_val(f"{self.get_client_type().upper()}_BATCH_SIZE", default=32))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path for embedding requests.

        Returns:
            str: The endpoint path for embedding requests (e.g. "/api/embed")
        """
        pass

    @abstractmethod
    def get_endpoint_model_details(self) -> str:
        """
        Returns the endpoint path for model details requests.

        Returns:
            str: The endpoint path for model details requests (e.g. "/api/show")
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        """Build the backend-specific request body for an embedding request.

        Args:
            texts (list[str]): The texts to embed.

        Returns:
            dict: JSON-serialisable request body (e.g. {"model": "...", "input": [...]}).
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_vector_size_from_model_info(self, model_info: dict) -> int:
        """
        Extracts the embedding vector size from the model information response.

        Args:
            model_info (dict): The raw response from the model details endpoint.

        Returns:
            int: The dimension of the embedding vectors produced by the model.
        """
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Extract embedding vectors from a raw embedding API response.

        Args:
            response_data (dict): The parsed JSON response body.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the input texts.

        Raises:
            ValueError: If the response format is invalid or embeddings are empty.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_verify_vector_size(self) -> int:
        """Check that the configured model produces vectors of the configured size.

        Returns:
            int: The model's vector size.

        Raises:
            ConfigurationError: If the model's dimension differs from EMBED_VECTOR_SIZE.
        """
        response = await self.do_request(
            method="POST",
            json={"name": self.embed_model},
            endpoint=self.get_endpoint_model_details(),
            raise_on_error=True,
        )
        model_size = self.extract_vector_size_from_model_info(model_info=response.json())
        if model_size != self.vector_size:
            raise ConfigurationError(
                f"Embedding model '{self.embed_model}' produces {model_size}-dimensional vectors, "
                f"but EMBED_VECTOR_SIZE is {self.vector_size}."
            )
        return model_size

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one or more texts, batching requests by EMBED_BATCH_SIZE.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: Embedding vectors in the same order as the inputs.

        Raises:
            RemoteRequestError: If the backend answers with an error status.
            ValueError: If the response does not contain one valid vector per text.
        """
        texts = [texts] if isinstance(texts, str) else texts
        vectors: list[list[float]] = []
        for batch_start in range(0, len(texts), self.batch_size):
            batch = texts[batch_start: batch_start + self.batch_size]
            response = await self.do_request(
                method="POST",
                endpoint=self.get_endpoint_embedding(),
                json=self.get_embed_payload(batch),
            )
            if response.status_code != 200:
                self.logging.error(
                    "Embedding request failed: status %d, body: %s",
                    response.status_code,
                    response.text[:200],
                )
                raise RemoteRequestError(
                    "Embedding request failed with status %d." % response.status_code,
                    status_code=response.status_code,
                )
            batch_vectors = self.extract_embeddings_from_response(response.json())
            if len(batch_vectors) != len(batch):
                raise ValueError(f"Expected {len(batch)} embeddings, got {len(batch_vectors)}.")
            for vector in batch_vectors:
                if len(vector) != self.vector_size:
                    raise ValueError(f"Embedding has {len(vector)} dimensions, expected {self.vector_size}.")
            vectors.extend(batch_vectors)
        return vectors
