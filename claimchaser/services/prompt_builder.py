"""
Agent prompt for a single claim call.

The ElevenLabs agent is shared across calls, so before each dial its
system prompt is replaced with one that carries the claim, office and
doctor details plus the keypad (DTMF) values the phone tree may ask for.
"""

from __future__ import annotations

from typing import Any, Optional

from claimchaser.config import Settings
from claimchaser.schemas.claim import ClaimRecord


def _lines(*items: tuple[str, Any]) -> str:
    return "\n".join(f"- {label}: {value}" for label, value in items if value not in (None, ""))


def build_claim_prompt(
    settings: Settings,
    claim: ClaimRecord,
    provider_name: str,
    to_number: str,
    office: Optional[dict[str, Any]] = None,
    doctor: Optional[dict[str, Any]] = None,
) -> str:
    persona = settings.agent_persona_name
    sections: list[str] = []

    sections.append(
        "# Personality\n\n"
        f"You are {persona}, a professional medical billing representative calling "
        f"{provider_name} at {to_number} on behalf of a medical office.\n\n"
        f'Your name is {persona}. When introducing yourself, say "My name is {persona}" '
        f'or "This is {persona} calling".\n\n'
        "You are currently on the phone call speaking directly with the insurance "
        "representative. You are the agent on the call, not an assistant helping someone else."
    )

    billed = f"${claim.billed_amount}" if claim.billed_amount else None
    sections.append(
        "# Claim Information\n\n"
        "**Patient Information:**\n"
        + _lines(
            ("Patient Name", claim.patient_name),
            ("Patient ID", claim.patient_id),
            ("Date of Birth", claim.date_of_birth),
        )
        + "\n\n**Claim Details:**\n"
        + _lines(
            ("Insurance Provider", provider_name),
            ("Claim Number", claim.claim_number),
            ("Date of Service", claim.date_of_service),
            ("Billed Amount", billed),
            ("Length of Service", claim.length_of_service),
            ("Current Status", claim.claim_status),
        )
    )

    if office:
        city_state = (
            f"{office['city']}, {office['state']}" if office.get("city") and office.get("state") else None
        )
        sections.append(
            "**Office Information:**\n"
            + _lines(
                ("Office Name", office.get("name")),
                ("Address", office.get("address")),
                ("City, State", city_state),
                ("ZIP Code", office.get("zip_code")),
                ("Callback Number", office.get("callback_number")),
                ("EIN", office.get("ein")),
            )
            + "\n\nIf asked for the office phone number or callback number, provide the "
            "Callback Number listed above."
        )

    if doctor:
        sections.append(
            "**Doctor Information:**\n"
            + _lines(("Doctor Name", doctor.get("name")), ("NPI", doctor.get("npi")))
        )

    sections.append(
        "# Goal\n\n"
        "Get the reason why the claim was denied and what needs to happen next:\n\n"
        "1. Navigate the automated phone system\n"
        "2. Verify claim status with the representative\n"
        "3. Get ALL reasons why the claim was denied. Ask specifically for every denial reason\n"
        "4. Get clear instructions on how to fix each denial reason\n"
        "5. Make sure every denial reason has a corresponding fix\n\n"
        "Only provide patient information when explicitly asked.\n\n"
        "Do not end the call until you have obtained ALL denial reasons and the specific "
        "next steps to fix each one."
    )

    sections.append(
        "# Guardrails\n\n"
        "Never provide patient information unless the representative specifically requests it.\n\n"
        "Never volunteer additional information beyond what is asked.\n\n"
        'If asked a Yes or No question, respond with only "Yes" or "No".'
    )

    npi = (doctor or {}).get("npi") or settings.default_npi
    ein = (office or {}).get("ein") or settings.default_ein
    patient_id = claim.patient_id or settings.default_patient_id
    sections.append(
        "**CRITICAL DTMF RULES:**\n"
        "1. **WAIT FOR PROMPTS**: Do NOT send DTMF tones until the automated system "
        "explicitly asks you to press a button or enter a number.\n"
        "2. **ONLY SEND DTMF WHEN ASKED**: Only use the play_keypad_touch_tone tool when "
        "the system asks for keypad input.\n"
        "3. **MATCH THE REQUESTED NUMBER**:\n"
        f'   - If asked to enter your **NPI** or **NPI or tax ID**, use play_keypad_touch_tone with "{npi}"\n'
        f'   - If asked to enter your **tax ID** or **EIN**, use play_keypad_touch_tone with "{ein}"\n'
        "   - If asked to enter your **ID**, **member ID** or **patient ID**, use "
        f'play_keypad_touch_tone with "{patient_id}"\n'
        '   - If asked to press a menu option (e.g. "Press 0 for operator"), use '
        "play_keypad_touch_tone with the digit requested\n"
        "4. **USE THE TOOL, DO NOT SPEAK**: When asked for keypad input, use the tool "
        "immediately without saying anything.\n"
        "5. **DO NOT ANNOUNCE DTMF**: Never announce that you are sending tones."
    )

    return "\n\n".join(sections)
