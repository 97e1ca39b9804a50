"""Decides whether a finished exchange is worth keeping in long-term memory.

The model is asked to classify the exchange; when its reply cannot be used,
a keyword heuristic takes over so the chat flow never fails here.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Optional

from app.services import llm_service

logger = logging.getLogger(__name__)

AUTO_SAVE = "auto_save"
PROMPT_USER = "prompt_user"
SKIP = "skip"
ACTIONS = (AUTO_SAVE, PROMPT_USER, SKIP)

EVALUATOR_SYSTEM_PROMPT = "You are an intelligent memory system evaluator. Reply with JSON only."

EVALUATION_PROMPT = """Analyze the following conversation and decide whether to save it to long-term memory.

User Query: "{query}"
AI Response: "{response}"
External Context Used: "{context}"

Evaluation Criteria:
1. AUTO_SAVE if response contains:
   - New factual information or learning
   - Successful problem-solving patterns
   - Important user corrections/feedback
   - Valuable insights or discoveries

2. PROMPT_USER if response contains:
   - Personal/sensitive information
   - Ambiguous but potentially valuable content
   - Complex reasoning that might be useful later

3. SKIP if response contains:
   - Basic greetings or casual conversation
   - Repeated/redundant information
   - Failed attempts or errors
   - Simple confirmations

Return JSON format: {{"action": "auto_save|prompt_user|skip", "reason": "brief explanation", "confidence": 0.0-1.0}}"""

AUTO_SAVE_PATTERNS = [
    re.compile(r"how to|tutorial|steps|guide|instructions"),
    re.compile(r"solve|solution|fix|resolve"),
    re.compile(r"learn|understand|explain"),
    re.compile(r"important|crucial|critical|key"),
    re.compile(r"remember|note|tip|advice"),
]

SKIP_PATTERNS = [
    re.compile(r"hello|hi|hey|thanks|thank you|bye|goodbye"),
    re.compile(r"yes|no|ok|okay|sure|fine"),
    re.compile(r"^.{1,20}$"),
]

PROMPT_PATTERNS = [
    re.compile(r"personal|private|sensitive|confidential"),
    re.compile(r"password|secret|key|token"),
    re.compile(r"my|mine|yourself|your"),
]

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class MemoryDecision:
    action: str
    reason: str
    confidence: float

    def to_dict(self) -> dict:
        return asdict(self)


def parse_decision(text: str) -> MemoryDecision:
    """Parse the evaluator's reply. Raises ValueError when it is unusable."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object in evaluation reply")

    try:
        result = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in evaluation reply: {e}")

    if not isinstance(result, dict) or result.get("action") not in ACTIONS:
        raise ValueError("Invalid action")

    try:
        confidence = float(result.get("confidence") or 0.5)
    except (TypeError, ValueError):
        confidence = 0.5

    return MemoryDecision(
        action=result["action"],
        reason=result.get("reason") or "No reason provided",
        confidence=max(0.0, min(1.0, confidence)),
    )


def fallback_evaluation(query: str, response: str, context: str) -> MemoryDecision:
    text = f"{query.lower()} {response.lower()}"

    if any(p.search(text) for p in AUTO_SAVE_PATTERNS):
        return MemoryDecision(AUTO_SAVE, "Contains valuable learning or problem-solving content", 0.8)

    if any(p.search(text) for p in SKIP_PATTERNS):
        return MemoryDecision(SKIP, "Basic conversation or very short response", 0.9)

    if any(p.search(text) for p in PROMPT_PATTERNS):
        return MemoryDecision(PROMPT_USER, "May contain personal or sensitive information", 0.7)

    if len(response) > 100 and len(context) > 0:
        return MemoryDecision(
            PROMPT_USER,
            "Substantial response with external context - user should decide",
            0.6,
        )

    return MemoryDecision(SKIP, "No clear value indicators found", 0.5)


async def evaluate_memory_value(
    query: str,
    response: str,
    context: str,
    model: Optional[str] = None,
) -> MemoryDecision:
    if not model:
        return fallback_evaluation(query, response, context)

    prompt = EVALUATION_PROMPT.format(query=query, response=response, context=context)
    try:
        reply = await llm_service.complete(
            [
                {"role": "system", "content": EVALUATOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=model,
            temperature=0.0,
            max_tokens=200,
        )
    except Exception as e:
        logger.error("Memory evaluation failed: %s", e)
        return fallback_evaluation(query, response, context)

    try:
        return parse_decision(reply)
    except ValueError as e:
        logger.warning("Failed to parse memory evaluation: %s", e)
        return fallback_evaluation(query, response, context)
