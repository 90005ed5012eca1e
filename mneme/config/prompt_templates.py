"""
Mneme - Prompt Templates & User-Facing Messages
=================================================
Centralised prompt management for the retrieval pipeline.  All prompts
and fixed fallback strings live here so they can be versioned and
reviewed independently of application logic.

Exports
-------
ANSWER_PROMPT_TEMPLATE, FOLLOW_UP_PROMPT_TEMPLATE,
CONTEXT_SEPARATOR, NO_HISTORY_PLACEHOLDER,
NO_MEMORIES_RESPONSE, SEARCH_ERROR_RESPONSE,
MISSING_KEY_RESPONSE, GENERATION_ERROR_RESPONSE.
"""

# ══════════════════════════════════════════════════════════════════════
#  USER-FACING FALLBACK MESSAGES
# ══════════════════════════════════════════════════════════════════════

NO_MEMORIES_RESPONSE: str = "I couldn't find any memories related to that. Try describing what you're looking for in different words."

SEARCH_ERROR_RESPONSE: str = "Sorry, I couldn't search your memories right now. Please try again in a moment."

MISSING_KEY_RESPONSE: str = "I cannot answer because the API key is missing."

GENERATION_ERROR_RESPONSE: str = "Sorry, I couldn't generate an answer at this time."


# ══════════════════════════════════════════════════════════════════════
#  CONTEXT FORMATTING
# ══════════════════════════════════════════════════════════════════════

CONTEXT_SEPARATOR: str = "\n\n---\n\n"

NO_HISTORY_PLACEHOLDER: str = "(No previous conversation.)"


# ══════════════════════════════════════════════════════════════════════
#  ANSWER PROMPT: FRESH QUESTION
# ══════════════════════════════════════════════════════════════════════

ANSWER_PROMPT_TEMPLATE: str = """You are a helpful assistant for a personal memory system.
The user saved notes, links and images. Below are {candidate_count} saved memories
retrieved by semantic similarity to the user's query. Similarity is a noisy signal:
some of these memories may NOT actually be relevant.

══════════════════════════════════════════
RETRIEVED MEMORIES
══════════════════════════════════════════
{context}

══════════════════════════════════════════
USER QUERY
══════════════════════════════════════════
{query}

──────────────────────────────────────────
Instructions:
1. Decide which memory IDs are genuinely relevant to the query, not merely similar.
2. Prioritise memories whose relevance is above {relevance_band}%.
3. "Visual Content" is an automatic description of the memory's image. For queries
   about photos, pictures, colours, places or anything visual, weigh it heavily.
4. Answer in 3-5 concise, friendly sentences using ONLY the relevant memories.
   If none are relevant, say "I don't have a memory of that."
5. Reply with a single JSON object and nothing else:

```json
{{"answer": "<your answer>", "relevantIds": ["<memory id>", "..."]}}
```
"""


# ══════════════════════════════════════════════════════════════════════
#  ANSWER PROMPT: FOLLOW-UP TURN
# ══════════════════════════════════════════════════════════════════════

FOLLOW_UP_PROMPT_TEMPLATE: str = """You are a helpful assistant for a personal memory system.
You are continuing a conversation about the {candidate_count} saved memories below.
They were selected in an earlier turn of this conversation.

══════════════════════════════════════════
MEMORIES IN THIS CONVERSATION
══════════════════════════════════════════
{context}

══════════════════════════════════════════
CONVERSATION HISTORY
══════════════════════════════════════════
{history}

══════════════════════════════════════════
FOLLOW-UP QUESTION
══════════════════════════════════════════
{query}

──────────────────────────────────────────
Instructions:
1. Resolve references such as "it", "that one" or "the second one" against the
   conversation history above.
2. Decide which memory IDs the follow-up question is actually about.
3. "Visual Content" is an automatic description of the memory's image. For questions
   about photos, pictures, colours, places or anything visual, weigh it heavily.
4. Answer in 3-5 concise, friendly sentences using ONLY those memories.
   If the memories cannot answer the question, say "I don't have a memory of that."
5. Reply with a single JSON object and nothing else:

```json
{{"answer": "<your answer>", "relevantIds": ["<memory id>", "..."]}}
```
"""
