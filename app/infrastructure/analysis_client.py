"""
Infrastructure layer: Agronomic analysis client with retry logic.

The analysis service is an opaque text-generation endpoint: it receives a
prompt plus the plot's figures and answers with a markdown recommendation.
"""
from typing import Any, Dict, Optional
import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from app.config import settings
from app.domain.models import AggregateSummary, Evaluation
from app.infrastructure.api_constants import AnalysisAPIEndpoints, APIConstants


class AnalysisServiceError(Exception):
    """Custom exception for analysis service errors."""

    def __init__(self, message: str, status_code: int = APIConstants.UNREACHABLE_STATUS):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def build_analysis_prompt(evaluation: Evaluation, summary: AggregateSummary) -> str:
    """
    Render the agronomist prompt for one evaluation.

    Args:
        evaluation: Evaluation being analysed
        summary: Its aggregate summary

    Returns:
        Prompt text
    """
    return (
        "Act as an agronomist specialised in coffee. Analyse the following field data.\n\n"
        f"Plot: {evaluation.plot_name}\n"
        f"Variety: {evaluation.variety}\n"
        f"Age: {evaluation.age_years:g} years\n\n"
        "COLLECTED STATISTICS:\n"
        f"- Coffee berry borer infestation: {summary.infestation_rate:.2f}% "
        f"({summary.infestation_risk.value} risk)\n"
        f"- Leaf rust incidence: {summary.rust_incidence_rate:.2f}% "
        f"({summary.rust_risk.value} risk)\n"
        f"- Trees evaluated: {summary.sampled_count} of {evaluation.tree_count}\n\n"
        "Task: write a technical recommendation plan.\n"
        "1. Assess whether infestation exceeds the economic damage threshold.\n"
        "2. Recommend cultural control actions (re-harvest and gleaning).\n"
        "3. Recommend specific chemical or biological control if needed.\n"
        "4. Give a nutrition recommendation based on crop age.\n\n"
        "Use Markdown. Be concise but technical."
    )


class AgronomicAnalysisClient:
    """
    Client for the agronomic analysis service.
    5xx and transport failures are retried with backoff; 4xx answers are not.
    """

    def __init__(self, api_key: Optional[str] = None):
        """Build the HTTP client; `api_key` overrides the configured key when given."""
        self.base_url = settings.analysis_api_base_url
        self.api_key = settings.analysis_api_key if api_key is None else api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "accept": APIConstants.CONTENT_TYPE_JSON,
            },
            timeout=settings.analysis_timeout,
        )

    async def __aenter__(self) -> "AgronomicAnalysisClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.RequestError)),
        reraise=True,
    )
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Send one request to the analysis service, retrying server-side failures.

        Args:
            method: HTTP verb
            endpoint: Path relative to the base URL
            **kwargs: Forwarded to httpx (json=, params=, ...)

        Returns:
            Decoded JSON body

        Raises:
            AnalysisServiceError: If the request fails with a client error
        """
        try:
            response = await self.client.request(method, endpoint, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            # Retry on server errors (5xx)
            if e.response.status_code >= 500:
                raise
            # Don't retry on client errors (4xx)
            raise AnalysisServiceError(
                f"Analysis request failed: {e.response.status_code} - {e.response.text}",
                status_code=e.response.status_code,
            )

    async def analyze(self, evaluation: Evaluation, summary: AggregateSummary) -> str:
        """
        Request an agronomic recommendation for an evaluation.

        Args:
            evaluation: Evaluation being analysed
            summary: Its aggregate summary

        Returns:
            Recommendation text (markdown)

        Raises:
            AnalysisServiceError: If no key is configured or the request fails
        """
        if not self.api_key:
            raise AnalysisServiceError(
                "Analysis API key is not configured",
                status_code=APIConstants.MISSING_KEY_STATUS,
            )

        payload = {
            "prompt": build_analysis_prompt(evaluation, summary),
            "plot": {
                "name": evaluation.plot_name,
                "variety": evaluation.variety,
                "age_years": evaluation.age_years,
            },
            "statistics": summary.model_dump(mode="json"),
        }

        try:
            data = await self._make_request("POST", AnalysisAPIEndpoints.ANALYSES, json=payload)
        except httpx.HTTPStatusError as e:
            raise AnalysisServiceError(
                f"Analysis service unavailable: {e.response.status_code}",
                status_code=APIConstants.UNREACHABLE_STATUS,
            ) from e
        except httpx.RequestError as e:
            raise AnalysisServiceError(f"Analysis request error: {str(e)}") from e

        text = data.get("text")
        if not text:
            raise AnalysisServiceError("Analysis service returned no text")
        return text


# Singleton instance
_analysis_client: Optional[AgronomicAnalysisClient] = None


def get_analysis_client() -> AgronomicAnalysisClient:
    """
    Get or create the singleton analysis client instance.

    Returns:
        AgronomicAnalysisClient instance
    """
    global _analysis_client
    if _analysis_client is None:
        _analysis_client = AgronomicAnalysisClient()
    return _analysis_client
