"""
Prompt templates for MCR

Templates use `string.Template` placeholders. Each builder fills in the
ontology hint and, on retries, the feedback explaining why the previous
output was rejected.
"""

from string import Template
from typing import List, Dict, Any, Optional

SYSTEM_PROMPT = "You are a logic programming assistant that writes standard Prolog."

SYNTAX_RULE = "A fact or rule must end with a single dot. A query must NOT end with a dot."

# Worked translations for few-shot prompting
TRANSLATION_EXAMPLES: List[Dict[str, Any]] = [
    {"domain": "animals", "text": "All birds fly.", "prolog": "flies(X) :- bird(X)."},
    {"domain": "animals", "text": "Tweety is a bird.", "prolog": "bird(tweety)."},
    {"domain": "animals", "text": "Does tweety fly?", "prolog": "flies(tweety)"},
    {"domain": "animals", "text": "Is Tweety a bird?", "prolog": "bird(tweety)"},
    {"domain": "animals", "text": "Penguins are birds that cannot fly.",
     "prolog": "bird(X) :- penguin(X)."},
    {"domain": "animals", "text": "Which animals can swim?", "prolog": "can_swim(X)"},
    {"domain": "philosophy", "text": "Socrates is mortal.", "prolog": "mortal(socrates)."},
    {"domain": "philosophy", "text": "All men are mortal.", "prolog": "mortal(X) :- man(X)."},
    {"domain": "family", "text": "John is the parent of Mary.", "prolog": "parent(john, mary)."},
    {"domain": "family", "text": "Who are Mary's parents?", "prolog": "parent(X, mary)"},
    {"domain": "family", "text": "A grandparent is a parent of a parent.",
     "prolog": "grandparent(X, Z) :- parent(X, Y), parent(Y, Z)."},
    {"domain": "family", "text": "Two people are siblings if they share a parent and are different people.",
     "prolog": "sibling(X, Y) :- parent(Z, X), parent(Z, Y), X \\= Y."},
    {"domain": "objects", "text": "What is the color of the car?", "prolog": "has_color(car, Color)"},
    {"domain": "objects", "text": "The car is red.", "prolog": "has_color(car, red)."},
    {"domain": "geography", "text": "Paris is in France.", "prolog": "located_in(paris, france)."},
    {"domain": "geography", "text": "Is Paris in Europe?", "prolog": "located_in(paris, europe)"},
    {"domain": "geography", "text": "A city is in a continent if its country is in that continent.",
     "prolog": "on_continent(City, C) :- located_in(City, Country), located_in(Country, C)."},
]

DIRECT_TEMPLATE = Template("""Translate the following into a Prolog fact, rule or query. Only output the Prolog code.
Do NOT include any extra text, comments, or explanations.
${syntax_rule}
Example: "All men are mortal." becomes "mortal(X) :- man(X)."${ontology_hint}${feedback_hint}

Input: ${text}
Output:""")

JSON_TEMPLATE = Template("""Translate the following into a JSON representation of a Prolog fact, rule or query.
Output ONLY valid JSON with:
- "type" ("fact"/"rule"/"query")
- "head" with "predicate" and "args" array
- "body" array (for rules only) with elements having "predicate" and "args"

Examples:
{"type":"fact","head":{"predicate":"bird","args":["tweety"]}}
{"type":"rule","head":{"predicate":"has_wings","args":["X"]},"body":[{"predicate":"bird","args":["X"]}]}
{"type":"query","head":{"predicate":"bird","args":["X"]}}${ontology_hint}${feedback_hint}

Input: ${text}
Output:""")

FEW_SHOT_TEMPLATE = Template("""Translate to Prolog fact, rule or query. Only output valid Prolog.
Do NOT include any extra text, comments, or explanations, just the Prolog.
${syntax_rule}${ontology_hint}

Examples:
${examples}${feedback_hint}

Input: ${text}
Output:""")

AGENT_TEMPLATE = Template("""You are an expert Prolog reasoner and agent. Your goal is to break down a complex task into discrete Prolog queries or assertions, or to reach a conclusion.
Your output must be a JSON object with a "type" field ("query", "assert", or "conclude") and a "content" field (Prolog goal for query, Prolog clause for assert), or an "answer" field for conclude.
${program_hint}${steps_hint}${bindings_hint}${ontology_hint}

Original Task: "${task}"

Examples:
- To query: {"type": "query", "content": "can_fly(X)"}
- To assert: {"type": "assert", "content": "bird(tweety)."}
- To conclude: {"type": "conclude", "answer": "Yes, Tweety can fly.", "explanation": "Because all canaries are birds and Tweety is a canary."}

Set "final": true on a query whose result directly answers the task.
If you have sufficient information to answer the original task, use "conclude". Provide a clear, concise natural language answer and a brief explanation.${feedback_hint}

What is the next logical step to address the original task?
Output:""")

FALLBACK_TEMPLATE = Template("""The symbolic knowledge base could not prove the following question.
Answer it briefly from general knowledge, in one or two sentences.${program_hint}

Question: ${question}
Answer:""")


def ontology_hint(ontology_terms: List[str]) -> str:
    if not ontology_terms:
        return ""
    return f"\n\nAvailable ontology terms: {', '.join(ontology_terms)}"


def feedback_hint(feedback: Optional[str]) -> str:
    if not feedback:
        return ""
    return f"\n\nYour previous answer was rejected. {feedback}"


def program_hint(program: List[str]) -> str:
    if not program:
        return ""
    return "\n\nCurrent Knowledge Base:\n" + "\n".join(program)


def format_examples(examples: List[Dict[str, Any]]) -> str:
    return "\n".join(
        f"{i}. \"{example['text']}\" -> \"{example['prolog']}\""
        for i, example in enumerate(examples, 1)
    )


def build_direct_prompt(text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> str:
    return DIRECT_TEMPLATE.substitute(
        text=text,
        syntax_rule=SYNTAX_RULE,
        ontology_hint=ontology_hint(ontology_terms),
        feedback_hint=feedback_hint(feedback),
    )


def build_json_prompt(text: str, ontology_terms: List[str], feedback: Optional[str] = None) -> str:
    return JSON_TEMPLATE.substitute(
        text=text,
        ontology_hint=ontology_hint(ontology_terms),
        feedback_hint=feedback_hint(feedback),
    )


def build_few_shot_prompt(text: str, ontology_terms: List[str], examples: List[Dict[str, Any]],
                          feedback: Optional[str] = None) -> str:
    return FEW_SHOT_TEMPLATE.substitute(
        text=text,
        syntax_rule=SYNTAX_RULE,
        ontology_hint=ontology_hint(ontology_terms),
        examples=format_examples(examples),
        feedback_hint=feedback_hint(feedback),
    )


def build_agent_prompt(task: str, program: List[str], ontology_terms: List[str],
                       previous_steps: List[str], accumulated_bindings: str,
                       feedback: Optional[str] = None) -> str:
    steps_hint = "\n\nPrevious Reasoning Steps:\n" + "\n".join(previous_steps) if previous_steps else ""
    bindings_hint = f"\n\nAccumulated Bindings: {accumulated_bindings}" if accumulated_bindings else ""
    return AGENT_TEMPLATE.substitute(
        task=task,
        program_hint=program_hint(program),
        steps_hint=steps_hint,
        bindings_hint=bindings_hint,
        ontology_hint=ontology_hint(ontology_terms),
        feedback_hint=feedback_hint(feedback),
    )


def build_fallback_prompt(question: str, program: List[str]) -> str:
    return FALLBACK_TEMPLATE.substitute(question=question, program_hint=program_hint(program))
