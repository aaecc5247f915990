"""
BudgetBot - Prompt Templates & Fixed Strings
=============================================
Centralised prompt management for the RAG engine.  All prompts live
here so they can be versioned, reviewed, and A/B-tested independently
of application logic.

Exports
-------
SYSTEM_INSTRUCTIONS, CONTEXT_TEMPLATE, CONTEXT_ENTRY_TEMPLATE,
CONTEXT_SEPARATOR, NO_CONTEXT_PLACEHOLDER, REWRITE_PROMPT,
REWRITE_RESPONSE_PREFIX, GENERATION_ERROR_MESSAGE.
"""

# ══════════════════════════════════════════════════════════════════════
#  SYSTEM INSTRUCTIONS (first turn of a session only)
# ══════════════════════════════════════════════════════════════════════

SYSTEM_INSTRUCTIONS: str = """You are CornBot, a financial analyst. Provide practical, data-driven insights.
Rules: Be concise, analytical, and round floats to 2 decimals. Answer in 250 words or less.
Format:
- **Summary**: [brief summary]
- **Details**: [numbers, details]
- **Recommendation**: [advice]"""


# ══════════════════════════════════════════════════════════════════════
#  RETRIEVED CONTEXT
# ══════════════════════════════════════════════════════════════════════

CONTEXT_ENTRY_TEMPLATE: str = "[Source Chunk {index} (Score: {score:.3f}):\n{text}]"

CONTEXT_SEPARATOR: str = "\n---\n"

NO_CONTEXT_PLACEHOLDER: str = "No relevant financial documents found in the database. Rely only on general financial knowledge."

CONTEXT_TEMPLATE: str = """FINANCIAL CONTEXT:
---
{context}
---
User question: {question}"""


# ══════════════════════════════════════════════════════════════════════
#  QUERY REWRITER
# ══════════════════════════════════════════════════════════════════════

REWRITE_PROMPT: str = """You are a query rewriter. Given a chat history and a new user question, rewrite the user question to be a standalone, self-contained question that incorporates all necessary context from the history.

Rules:
- If the user question is already self-contained, return it as-is.
- Otherwise, rephrase it, adding context (like dates, topics, names) from the history.
- **Respond with ONLY the rewritten query and nothing else.**

Chat History:
{history}

User Question: {question}"""

REWRITE_RESPONSE_PREFIX: str = "Rewritten Question: "


# ══════════════════════════════════════════════════════════════════════
#  FAILURE RESPONSES
# ══════════════════════════════════════════════════════════════════════

GENERATION_ERROR_MESSAGE: str = "Error: Could not get a response from the model."
