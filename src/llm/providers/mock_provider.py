from __future__ import annotations
import json
from llm.providers.base import LLMProvider

class MockProvider(LLMProvider):
    name = "mock"

    def generate(self, *, system: str, user: str) -> str:
        """
        Returns dummy JSON responses based on the response format the prompt asks for.
        """
        if '"estimated_minutes"' in system:
            minutes = 5 if "Activity Type: email" in user else 30
            return json.dumps({
                "estimated_minutes": minutes,
                "confidence_score": 0.6,
                "reasoning": "Mock estimate",
                "min_minutes": minutes // 2,
                "max_minutes": minutes * 2,
            })

        if '"matched_project_id"' in system:
            return json.dumps({
                "matched_project_id": None,
                "confidence_score": 0.0,
                "reasoning": "Mock provider does not match projects",
                "alternatives": [],
            })

        if '"key_points"' in system:
            return json.dumps({
                "summary": "Mock summary",
                "key_points": [],
                "confidence_score": 0.5,
            })

        if '"read_time_minutes"' in system:
            return json.dumps({
                "read_time_minutes": 2,
                "compose_time_minutes": 3,
                "total_estimated_minutes": 5,
                "confidence_score": 0.5,
                "complexity_factors": [],
            })

        if '"productive_minutes"' in system:
            return json.dumps({
                "productive_minutes": 25,
                "overhead_minutes": 5,
                "prep_time_minutes": 5,
                "followup_time_minutes": 5,
                "efficiency_score": 0.7,
                "reasoning": "Mock analysis",
            })

        if '"active_work_minutes"' in system:
            return json.dumps({
                "active_work_minutes": 30,
                "research_minutes": 10,
                "editing_minutes": 10,
                "collaboration_minutes": 0,
                "total_estimated_minutes": 50,
                "confidence_score": 0.5,
            })

        # Default fallback
        return "{}"
