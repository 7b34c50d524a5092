"""
Andrew - Prompt Templates & Intent Patterns
============================================
Centralised prompt management for the chat pipeline.  All prompts and
the intent-detection patterns live here so they can be reviewed and
tuned independently of application logic.

The knowledge-base *system prompt* itself is content, not code: it ships
inside the knowledge-base document (``systemPrompt``).

Exports
-------
RAG_PROMPT_TEMPLATE, SIMPLE_PROMPT_TEMPLATE,
GREETING_PATTERNS, QUESTION_PATTERNS, SIMPLE_MESSAGE_PATTERNS,
MISSING_API_KEY_DETAILS, RATE_LIMIT_DETAILS, LLM_FAILURE_DETAILS,
RATE_LIMIT_PATTERN.
"""

import re

# ══════════════════════════════════════════════════════════════════════
#  SYSTEM MESSAGES
# ══════════════════════════════════════════════════════════════════════

RAG_PROMPT_TEMPLATE: str = """{system_prompt}

Here is the relevant information from your knowledge base that you should reference when answering this question:

{context}

IMPORTANT INSTRUCTIONS FOR RESPONSES:
1. Be concise and direct - only provide information that directly answers the user's question
2. Don't volunteer additional information unless specifically asked
3. If the user asks a simple question, give a simple answer
4. Only use the knowledge base information when it's directly relevant to the question
5. For greetings or simple interactions, respond naturally without referencing the knowledge base

CROSS-CHUNK REASONING (only when needed):
1. The information above may come from multiple related knowledge chunks
2. You should synthesize information across all provided chunks to give complete answers
3. If you see sections marked as "Related Information", use them to provide more comprehensive answers
4. When information from different chunks needs to be combined (like calculations or cross-references), do so explicitly
5. If the user is asking about something that requires information from multiple chunks, make connections between them

Remember to only use this information and your general knowledge to answer the question. If the answer is not in the provided context, you can use your general knowledge but make it clear when you're doing so."""

SIMPLE_PROMPT_TEMPLATE: str = """You are Andrew AI, a helpful assistant.

For this interaction:
- Be friendly and concise
- Don't provide unnecessary information
- Respond naturally to greetings and simple messages
- Keep responses brief unless the user asks for more details

Current interaction type: {intent}"""


# ══════════════════════════════════════════════════════════════════════
#  INTENT DETECTION
# ══════════════════════════════════════════════════════════════════════
# Matched against the lowercased, stripped user message.

GREETING_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(hi|hello|hey|good morning|good afternoon|good evening)$"),
    re.compile(r"^(hi there|hello there|hey there)$"),
    re.compile(r"^(what's up|whats up|sup)$"),
    re.compile(r"^(how are you|how's it going|hows it going)$"),
)

QUESTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\?$"),
    re.compile(r"^(what|how|when|where|why|who|which|can|could|would|should|is|are|do|does|did)"),
    re.compile(r"\b(help|explain|tell me|show me|guide|tutorial|steps)\b"),
)

# Acknowledgements and farewells never need knowledge-base context
SIMPLE_MESSAGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(thanks|thank you|ok|okay|yes|no|sure)$", re.IGNORECASE),
    re.compile(r"^(bye|goodbye|see you|talk to you later)$", re.IGNORECASE),
)


# ══════════════════════════════════════════════════════════════════════
#  ERROR DETAILS (returned to the chat widget)
# ══════════════════════════════════════════════════════════════════════

MISSING_API_KEY_DETAILS: str = "Please provide your API key in the chat interface settings, or contact your administrator to configure the server API key."

RATE_LIMIT_DETAILS: str = "You've reached the model provider's rate limit. Please use your own API key."

LLM_FAILURE_DETAILS: str = "Both the primary and the fallback model failed to answer. Please try again with a shorter message."

# Whole-word signals of rate or quota exhaustion in provider error text
RATE_LIMIT_PATTERN: re.Pattern[str] = re.compile(r"\b(429|rate[ _-]?limit(s|ed)?|quota|resource[ _]exhausted|resource has been exhausted|too many requests)\b", re.IGNORECASE)
