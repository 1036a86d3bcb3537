"""
Prompt builders for test generation, answer judging, moderation and the
three plan synthesis stages
"""
from typing import Any, Dict, List, Optional

LEARNING_PLAN_HEADING = "## 3. Learning Plan"
LEARNING_PLAN_PLACEHOLDER = "{{learning_plan_placeholder}}"
DETAILS_PLACEHOLDER = "{{details_to_be_filled}}"

STRICT_JSON_DIRECTIVE = (
    "IMPORTANT: Return only valid JSON that matches the OUTPUT FORMAT exactly. No commentary."
)

TEST_SYSTEM_PROMPT = "You are an expert assessment designer and learning scientist."
FRAMEWORK_SYSTEM_PROMPT = "You are an AI education designer specialized in personalized learning plans."
STRUCTURE_SYSTEM_PROMPT = (
    "You are an expert curriculum designer and cognitive learning scientist "
    "specializing in personalized learning pathways."
)
CONTENT_SYSTEM_PROMPT = (
    "You are an expert curriculum designer specializing in creating actionable, concise learning content."
)


def build_placement_prompt(goal: Optional[str], experience: Optional[str]) -> str:
    safe_goal = goal or "Clarify learner goal"
    safe_experience = experience or "No experience provided"

    return f"""Generate a placement test that determines a learner's true understanding of the topics
between their stated experience and their goal.

CONTEXT
Goal (target qualification or level): {safe_goal}
Learner's stated experience: {safe_experience}

SCOPE & BOUNDARY RULES
- Never include content beyond the learner's goal, even if their stated experience mentions it.
- The hardest allowed difficulty is the upper limit of the goal.
- Use the stated experience only to anchor the starting point and calibrate mid-range difficulty.
- If the stated experience exceeds the goal, treat it as over-estimation and still cap at the goal.
- Only write questions that can be shown as plain text (no graphs or images).

ADAPTIVE LENGTH GUIDE
Estimate the gap between experience and goal:
- Small gap (e.g. Year 9 -> Year 10): 25-30 questions
- Moderate gap (e.g. Year 8 -> GCSE): 30-40 questions
- Large gap (e.g. Year 3 -> A-Level): 40-50 questions

DIFFICULTY CALIBRATION
- 20-30% slightly below the stated experience, 50% at it, 20-30% a slight stretch toward the goal.
- Do not label levels. Mix topics randomly. Do not repeat a topic more than twice.

QUESTION DESIGN
- Each question tests one concept.
- Use "multiple_choice" (exactly 4 options A-D) or "text" (open-ended); "text" only when a
  multiple choice question is not possible, at most 10-15% of questions.
- Never reveal the answer or the options inside the question text.

OUTPUT FORMAT (strict JSON)
{{
  "topic": "...",
  "prerequisites": ["...", "..."],
  "questions": [
    {{
      "id": 1,
      "question": "...",
      "type": "multiple_choice" | "text",
      "options": ["A. ...", "B. ...", "C. ...", "D. ..."],
      "correct_answer": "A" | "B" | "C" | "D" | null,
      "explanation": "rationale + marking note + diagnostic insight",
      "assesses": "the specific subskill tested"
    }}
  ]
}}

CONSTRAINTS
- Plain ASCII only.
- Output JSON only."""


def build_judge_prompt(
    question_text: str,
    reference_answer: Optional[str],
    explanation: Optional[str],
    user_answer: str
) -> str:
    return f"""You are evaluating a learner's free-text answer.
Return a strict JSON object with the keys: is_correct (boolean), ideal_answer (string), feedback (string).
Rubric:
- is_correct is true only if the learner answer demonstrates the essential knowledge of the ideal answer (not word for word).
- ideal_answer is a concise, high-quality answer that could be stored as the reference answer.
- feedback is at most 2 short sentences explaining the judgement.

Question: {question_text}
Reference answer: {reference_answer or 'N/A'}
Diagnostic explanation: {explanation or 'N/A'}
Learner answer: {user_answer}
"""


def build_moderation_prompt(goal: str, experience: str) -> str:
    return f"""You are a strict content and subject reviewer for learning goals.
Analyse the learner onboarding responses below.
Return ONLY a compact JSON object:
{{"approved": true | false, "message": "Short friendly sentence explaining the decision"}}

Set "approved": false if the goal or experience:
- contains or promotes hate, violence, sexual content, self-harm, illegal activity or misinformation
- is trivial, non-educational, joke-like or nonsensical
- does not give enough information to build a placement test

When rejecting, politely ask for a clear educational goal. When approving, set message to "Approved".

1) Learner goal: {goal}
2) Learner experience: {experience}
"""


def concept_performance(responses: List[Dict[str, Any]]) -> str:
    """One line per question: label, Secure/Gap, learner answer and reference"""
    lines = []
    for index, item in enumerate(responses, start=1):
        base_label = " ".join((item.get("concept") or item.get("question") or f"Question {item.get('order', index)}").split())
        label = f"{base_label[:67]}..." if len(base_label) > 70 else base_label
        status = "Secure" if item.get("is_correct") else "Gap"
        answer = f", answer: {item['user_response']}" if item.get("user_response") else ""
        correct = f", correct: {item['correct_answer']}" if item.get("correct_answer") else ""
        lines.append(f"{index}. {label} - {status}{answer}{correct}")
    return "\n".join(lines) or "No diagnostic responses yet."


def response_digest(responses: List[Dict[str, Any]]) -> str:
    return ", ".join(
        f"Q{item.get('order', index)}: {'correct' if item.get('is_correct') else 'incorrect'}"
        for index, item in enumerate(responses, start=1)
    )


def _concepts(responses: List[Dict[str, Any]], correct: bool) -> str:
    concepts = [item["concept"] for item in responses if item.get("concept") and bool(item.get("is_correct")) == correct]
    return ", ".join(concepts) or "None identified"


def build_framework_prompt(goal: str, experience: str, responses: List[Dict[str, Any]]) -> str:
    performance = concept_performance(responses)
    return f"""Write a personalized learning plan document. Keep output clean, short and bullet-based.

TONE & FORMAT RULES
- Bullet lists for every section (max 4 bullets, each under 14 words).
- Leave placeholders of the form {{{{placeholder}}}} exactly as they are.

LEARNER SNAPSHOT
Current level: {experience}
Goal: {goal}
Placement results: {response_digest(responses)}

OUTPUT FORMAT (follow headings exactly)

## Personalized Mastery Plan
**Your Goal:** "{goal}"

## 1. Learning Strategy Overview
- The most efficient techniques to reach the goal from the current level.

## 2. Diagnostic Summary
- A simple summary of current understanding based on:
{performance}

{LEARNING_PLAN_HEADING}
{LEARNING_PLAN_PLACEHOLDER}

## 4. Tutor Insights
- Five short coaching tips.

## 5. Review & Reinforcement Plan
- How to revisit the gaps listed in the diagnostic summary.

## 6. Completion & Endnote
- One uplifting closing bullet.

Output only the formatted document text, no JSON and no extra commentary."""


def build_structure_prompt(goal: str, experience: str, responses: List[Dict[str, Any]]) -> str:
    return f"""Build a personalized, perfectly ordered learning plan skeleton that bridges the learner's true
current level (detected from the placement results) to their goal, without going beyond it.
Only create the empty modules for now.

Scale the number of modules by the gap between current level and goal:
- Small gap: about 15-20 modules
- Medium gap: about 25-50 modules
- Large gap: about 50-70 modules
- Extra large gap: 100+ modules

INPUTS
Goal: {goal}
Stated experience: {experience}
Placement results:
{concept_performance(responses)}
Strengths: {_concepts(responses, True)}
Weak spots: {_concepts(responses, False)}

RULES
- Every module builds on earlier modules; stop exactly at the goal level.
- Scaffold weak spots; do not recap skills proven in the placement test.
- Group modules into phases by topic. Module titles must be ultra specific.

OUTPUT FORMAT

{LEARNING_PLAN_HEADING}

### Phase 1: [Phase Title]
*[One sentence overview]*

#### Module 1: [specific skill]
{DETAILS_PLACEHOLDER}

#### Module 2: [specific skill]
{DETAILS_PLACEHOLDER}

[Continue through all phases]

Return ONLY the learning plan section."""


def build_content_prompt(goal: str, experience: str, responses: List[Dict[str, Any]], structure: str) -> str:
    return f"""Fill in every {DETAILS_PLACEHOLDER} placeholder in the structure below with ultra-concise content.

Context
- Goal: {goal}
- Current level: {experience}
- Placement details:
{concept_performance(responses)}

For each module write exactly these fields, one terse line each:
**Goal:** what the learner will master (8-12 words)
**Resource:** one best learning resource with URL
**Check:** a simple success criterion

Keep all phase titles, module titles and structure exactly as given.

{structure}

Return ONLY the filled learning plan."""
