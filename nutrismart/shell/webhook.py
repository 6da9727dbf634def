"""Nutrition Webhook Client - the external nutrition/AI workflow.

One POST endpoint, dispatched on an 'action' field:
    ref   analyse foods and store a meal entry; returns the created entry
    plan  draft a meal plan from a patient's goals
    chef  free-text cooking help, sometimes with a structured recipe
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..core.models import ActivePlan, ChefReply, FoodItem, MealEntry
from ..core.webhook_parsing import parse_chef_response, parse_plan_response
from .errors import WebhookError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


def describe_foods(foods: list[FoodItem]) -> str:
    """Render foods as one phrase, e.g. '100g de arroz e 2un de ovo'."""
    return " e ".join(f"{food.portion:g}{food.unit} de {food.name}" for food in foods)


class NutritionWebhookClient:
    """Client for the nutrition workflow webhook."""

    def __init__(
        self,
        url: Optional[str],
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize webhook client.

        Args:
            url: Webhook endpoint (None when not configured)
            http_client: Optional preconfigured httpx client
            timeout: Request timeout in seconds
        """
        self.url = url
        self._http = http_client or httpx.Client(timeout=timeout)

    def _post(self, action: str, payload: dict[str, Any]) -> httpx.Response:
        if not self.url:
            raise WebhookError("A URL do webhook de nutrição não está configurada.")

        try:
            response = self._http.post(self.url, json={"action": action, **payload})
        except httpx.HTTPError as e:
            logger.error("Webhook '%s' request failed: %s", action, str(e))
            raise WebhookError() from e

        if response.is_error:
            logger.error(
                "Webhook '%s' returned %d: %s", action, response.status_code, response.text[:200]
            )
            raise WebhookError(
                f"O serviço de nutrição retornou um erro: {response.reason_phrase}"
            )
        return response

    def analyze_meal(
        self,
        user_id: str,
        meal_type: str,
        foods: list[FoodItem],
        log_date: Optional[str] = None,
    ) -> MealEntry:
        """Have the workflow analyse and store a meal.

        The workflow writes the meal_entries document itself and answers
        with it.

        Raises:
            WebhookError: On transport failure, non-2xx or an unexpected body
        """
        if not foods:
            raise WebhookError("Adicione pelo menos um alimento.")

        response = self._post(
            "ref",
            {
                "alimento": describe_foods(foods),
                "userId": user_id,
                "mealType": meal_type,
                "date": log_date or date.today().isoformat(),
                "foods": [food.model_dump() for food in foods],
                "createdAt": datetime.now(timezone.utc).isoformat(),
            },
        )
        try:
            data = response.json()
        except ValueError as e:
            raise WebhookError("Formato de resposta do webhook inesperado.") from e
        if not isinstance(data, dict) or not data.get("id"):
            raise WebhookError("Formato de resposta do webhook inesperado.")

        try:
            entry = MealEntry.model_validate(data)
        except ValidationError as e:
            logger.error("Webhook meal entry invalid: %d errors", e.error_count())
            raise WebhookError("Formato de resposta do webhook inesperado.") from e
        logger.info(
            "Analysed %s for %s: %.0f kcal", meal_type, user_id[:8], entry.meal_data.totals.calories
        )
        return entry

    def generate_plan(
        self,
        user_id: str,
        hydration_goal: int,
        calorie_goal: Optional[int] = None,
        protein_goal: Optional[int] = None,
        weight: Optional[float] = None,
        target_weight: Optional[float] = None,
        target_date: Optional[date] = None,
    ) -> ActivePlan:
        """Ask the workflow for a meal plan draft.

        Goals left as None are chosen by the workflow.

        Raises:
            WebhookError: On transport failure, non-2xx or an unparseable plan
        """
        response = self._post(
            "plan",
            {
                "user": {
                    "id": user_id,
                    "calorieGoal": calorie_goal,
                    "proteinGoal": protein_goal,
                    "hydrationGoal": hydration_goal,
                    "weight": weight,
                    "targetWeight": target_weight,
                    "targetDate": target_date.isoformat() if target_date else None,
                }
            },
        )
        try:
            return parse_plan_response(response.text)
        except ValueError as e:
            logger.error("Unparseable plan for %s: %s", user_id[:8], str(e))
            raise WebhookError("Formato de resposta da IA inesperado.") from e

    def ask_chef(self, user_id: str, prompt: str) -> ChefReply:
        """Send a cooking question to the virtual chef.

        Raises:
            WebhookError: On transport failure or non-2xx
        """
        if not prompt.strip():
            raise WebhookError("Descreva o que você gostaria de cozinhar.")
        response = self._post("chef", {"sessionId": user_id, "prompt": prompt})
        return parse_chef_response(response.text)
