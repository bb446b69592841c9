"""
Prompt Synthesis

Builds the request that asks a generation model for an improved extraction
prompt, and parses its reply.

Reply parsing never raises for malformed model output: anything unusable
(empty, not JSON, too short, a bare "Extract the X") is replaced by a
deterministic fallback prompt for the field. The only hard failure is a
missing field name, since no fallback can be built without one.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from prompt_optimizer_core.domain.constants import DROPDOWN_FIELD_TYPES
from prompt_optimizer_core.domain.value_objects import FailureExample, SuccessExample
from prompt_optimizer_core.errors import InputValidationError
from prompt_optimizer_core.optimizer_config import Catalog

logger = logging.getLogger(__name__)

DEFAULT_MIN_PROMPT_LENGTH = 150

# Ordered candidate keys for the two reply fields
PROMPT_KEYS = ("newPrompt", "new_prompt", "prompt", "instruction")
REASONING_KEYS = ("reasoning", "rationale", "reason")

_GENERIC_PROMPT_RE = re.compile(r"^extract the .{1,50}(from this document)?\.?$", re.IGNORECASE)
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass
class SynthesisRequest:
    """Everything the generation model sees when asked for a better prompt"""
    field_name: str
    field_type: str
    current_prompt: str
    iteration: int
    max_iterations: int
    failure_examples: Sequence[FailureExample] = ()
    success_examples: Sequence[SuccessExample] = ()
    previous_prompts: Sequence[str] = ()
    options: Sequence[str] = ()
    document_type: str | None = None
    template_key: str | None = None
    custom_instructions: str | None = None
    system_prompt_override: str | None = None
    company_name: str | None = None


@dataclass(frozen=True)
class SynthesisResult:
    """Parsed synthesis reply"""
    new_prompt: str
    reasoning: str
    used_fallback: bool = False


# ---------------------------------------------------------------------------
# Example / fallback prompts
# ---------------------------------------------------------------------------

def _contains(*words: str) -> Callable[[str], bool]:
    return lambda name: all(w in name for w in words)


def _any_of(*words: str) -> Callable[[str], bool]:
    return lambda name: any(w in name for w in words)


_RENEWAL_DEFAULT_OPTIONS = "Autorenewal, Manual Renewal, Evergreen Renewal, No Renewal"

# (matcher on lower-cased field name, example prompt); first match wins
_NAMED_EXAMPLES: list[tuple[Callable[[str], bool], str]] = [
    (_any_of("end date", "expiration", "termination date"),
     'Search for when this agreement ends. Look for: "expires on", "terminates on", "term ends", '
     '"valid until", "expiration date". If no explicit end date exists, calculate it from the Effective '
     'Date plus the Term duration. For perpetual or evergreen agreements with no fixed end, return '
     '"Perpetual". Return the date in YYYY-MM-DD format. Do NOT confuse with notice periods or renewal dates.'),
    (_any_of("effective date", "start date"),
     'Search for when this agreement becomes effective. Look for: "effective as of", "effective date", '
     '"dated as of", "commences on", "entered into as of". Check the document header, first paragraph, '
     'and signature blocks. Return the date in YYYY-MM-DD format. If multiple dates exist, use the '
     'explicitly labeled "Effective Date". Do NOT use signature dates unless they are the only dates '
     'present. Return "Not Present" if no date is found.'),
    (_contains("termination", "convenience"),
     'Search the "Termination" section for whether either party can terminate WITHOUT cause. Look for: '
     '"terminate for convenience", "terminate at will", "terminate without cause", "terminate for any '
     'reason", "terminate upon X days notice". Return "Yes" if either party can terminate without '
     'cause or breach. Return "No" if termination requires cause, breach, or default. Do NOT classify '
     'breach-based termination as "convenience".'),
    (_contains("termination", "cause"),
     'Search the "Termination" section for cause-based termination rights. Look for: "terminate for '
     'cause", "material breach", "default", "failure to perform", "insolvency", "bankruptcy". Return '
     '"Yes" if the agreement allows termination for cause or breach. Return "No" if there is no '
     'cause-based termination provision.'),
    (_any_of("governing law", "jurisdiction"),
     'Search for the governing law clause, typically in a section called "Governing Law", "Applicable '
     'Law", or "Choice of Law". Look for: "governed by the laws of", "construed in accordance with the '
     'laws of", "subject to the laws of". Return ONLY the state or country name (e.g., "Delaware", '
     '"New York", "England"). Do NOT include a "State of" prefix or venue/arbitration location. Return '
     '"Not Present" if no governing law is specified.'),
    (_any_of("contract type", "agreement type"),
     'Identify the type of agreement from the document title and first paragraph. Common types: NDA, '
     'MSA, SOW, Amendment, Lease Agreement, Purchase Agreement, Employment Agreement. Look for the title '
     'at the top of the document and phrases like "This Agreement", "This NDA", "This Master Agreement". '
     'Return the standard abbreviation or full name. Do NOT return generic terms like "Contract" if a '
     'specific type is identifiable.'),
    (_contains("notice", "period"),
     'Search for the notice period required for termination or non-renewal. Look in "Termination", '
     '"Term", or "Renewal" sections for phrases like: "X days written notice", "notice period of", '
     '"prior written notice", "advance notice". Return the notice period as stated (e.g., "30 Days", '
     '"60 Days"). If no notice period is specified, return "Not Present". Do NOT confuse with cure '
     'periods for breach.'),
    (_any_of("vendor", "supplier"),
     'Search for the vendor/supplier name in the invoice. This is the company PROVIDING goods/services. '
     'Look in: (1) the document header/logo area, (2) "From:" field, (3) "Vendor:", "Supplier:", "Bill '
     'From:", "Remit To:" labels. Do NOT extract customer names from "Bill To:" or "Ship To:" sections. '
     'Return the complete business name with suffixes (Inc, LLC, Corp). Return "Not Present" if not found.'),
    (lambda name: "amount due" in name or ("total" in name and "amount" in name),
     'Search for the final amount due on this invoice. Look for: "Amount Due:", "Total Due:", "Balance '
     'Due:", "Total:", "Grand Total:", "Invoice Total:". This is typically at the bottom of the invoice '
     'near payment instructions. Return the EXACT numeric value including cents (e.g., "1234.56"). Do '
     'NOT round. Remove currency symbols but preserve decimal precision exactly as shown.'),
    (lambda name: "sales tax" in name or ("tax" in name and "pre" not in name),
     'Search for the sales tax amount on this invoice. Look for: "Sales Tax:", "Tax:", "Tax Amount:", '
     '"VAT:", "GST:", "State Tax:". It is usually a line item between subtotal and total. Return the '
     'EXACT amount with cents (e.g., "45.67"). Do NOT return the tax rate percentage. If tax shows '
     '"$0.00" or "Exempt", return "0". Return "Not Present" only if no tax line exists.'),
    (_any_of("subtotal", "sales amount", "merchandise"),
     'Search for the subtotal or sales amount BEFORE tax and shipping. Look for: "Subtotal:", "Sales '
     'Amount:", "Merchandise Total:", "Net Amount:", "Taxable Amount:". This appears after line items '
     'but before tax, shipping and total. Return the EXACT amount with cents (e.g., "432.50"). Do NOT '
     'confuse with the grand total that includes tax. Do NOT round.'),
    (_any_of("freight", "shipping", "delivery"),
     'Search for freight or shipping charges on this invoice. Look for: "Freight:", "Shipping:", '
     '"Shipping & Handling:", "S&H:", "Delivery:", "Carrier:". Check the charges breakdown near the '
     'subtotal and total. If freight shows "$0.00", "No Charge", "Included", or "Prepaid", return "0" '
     '(not "Not Present"). Return the exact amount with cents. Return "Not Present" only if no freight '
     'line exists at all.'),
    (_any_of("po number", "purchase order"),
     'Search for the Purchase Order number on this invoice. Look for: "PO #:", "P.O.:", "PO Number:", '
     '"Purchase Order:", "Customer PO:", "Your Order #:". It is usually in the invoice header or billing '
     'info section. Do NOT confuse with the Invoice Number (often "INV-xxxx") or confirmation numbers. '
     'Return the exact alphanumeric value as shown. Return "Not Present" if no PO is referenced.'),
    (lambda name: name in ("term", "terms") or "payment term" in name,
     'Search for payment terms on this invoice. Look for: "Terms:", "Payment Terms:", "Net Terms:", near '
     'the due date or in the terms section. Common values: "NET 30", "NET 15", "NET 60", "Due on '
     'Receipt", "COD". Return the standardized term (e.g., "NET 30" not "Net 30 Days"). Return "Not '
     'Present" if no payment terms are specified.'),
    (lambda name: "description" in name and "item" not in name,
     'Search for a description or memo explaining this invoice\'s purpose. Look in: (1) the header area '
     'near the invoice number, (2) "Subject:", "RE:", "Memo:", "Description:", "Purpose:" fields, (3) '
     'the reference line. Do NOT extract the document title "INVOICE", invoice numbers, customer names, '
     'or individual line item descriptions. Return "Not Present" if no overall description exists.'),
    (_any_of("item"),
     'Extract line items from the invoice table. Look in the main itemization table with columns like '
     '"Description", "Item", "Qty", "Unit Price", "Amount". Extract ONLY the description/name of each '
     'product or service, not quantities or prices. Do NOT include table headers, subtotal/total rows, '
     'tax lines, or notes. Format as a comma-separated list if multiple items. Return "Not Present" if '
     'no itemized products/services exist.'),
]

_TYPE_DEFAULT_EXAMPLES = {
    "dropdown": (
        'Search for the {name} in the document title, header, or first paragraph. Look for synonyms and '
        'related labels. Return EXACTLY one value from the available dropdown options that best matches '
        'the document content. Do NOT infer or create values outside the available options. Return '
        '"Not Present" if no clear match exists.'
    ),
    "date": (
        'Search the document for the {name}. Look in headers, signature blocks, and relevant sections. '
        'Return the date in YYYY-MM-DD format. If only month and year are given, use the first day of '
        'the month. Return "Not Present" if no date is found.'
    ),
    "number": (
        'Search the document for the {name}. Return the EXACT numeric value as it appears, including '
        'decimal places (e.g., "432.50" not "432"). Do NOT round numbers. Remove currency symbols but '
        'keep the exact numeric value. If a range is given, return the primary/base value. Return "Not '
        'Present" if no number is found.'
    ),
    "string": (
        'Search the entire document for the {name}. Look in relevant sections, headers, and signature '
        'blocks. Extract the exact value as it appears. If multiple values exist, return the most '
        'authoritative one. Return "Not Present" if not found.'
    ),
}

# Appended to a fallback prompt until it clears the minimum length
_PADDING_SENTENCES = (
    "Quote the value exactly as written in the document without adding commentary.",
    "Prefer values from clearly labeled sections over values mentioned in passing.",
    "Do NOT combine values from different parts of the document into one answer.",
    'If the document is ambiguous, return the most authoritative value or "Not Present".',
)


def get_example_prompt_for_field(
    field_name: str,
    field_type: str = "string",
    options: Sequence[str] = (),
    company_name: str | None = None,
) -> str:
    """
    Return a detailed example extraction prompt for a field

    Matches well-known contract and invoice fields by name, then falls back
    to a template for the field type.
    """
    lower_name = field_name.lower()

    if "counter party" in lower_name and ("name" in lower_name or "address" in lower_name):
        exclude = (
            f'Do NOT return "{company_name}"; it is the extracting company that appears in every contract.'
            if company_name
            else "Do NOT return the extracting company (the party that appears in ALL contracts)."
        )
        if "address" in lower_name:
            return (
                "Search for the counter party's business address (the OTHER party). Look in: (1) the "
                "opening recitals near the counter party's name, (2) the \"Notices\" section, (3) signature "
                f"blocks. {exclude} Return the complete address including street, city, state, and ZIP "
                'code on a single line. Return "Not Present" if no address is found.'
            )
        return (
            "Search for the OTHER contracting party in this agreement. Look in: (1) the opening paragraph "
            'after "by and between" or "Agreement between", (2) signature blocks. '
            f"{exclude} Return ONLY the legal entity name exactly as written. "
            'If no clear counter party is identified, return "Not Present".'
        )

    if "renewal" in lower_name:
        option_list = ", ".join(options) if options else _RENEWAL_DEFAULT_OPTIONS
        return (
            'Search the "Term", "Renewal", or "Duration" sections for how this agreement renews. Return '
            f"EXACTLY one of: {option_list}. Look for phrases like \"automatically renew\", \"shall renew\", "
            '"may be renewed", "no renewal". Do NOT guess; if unclear, look for termination language to infer.'
        )

    for matches, example in _NAMED_EXAMPLES:
        if matches(lower_name):
            return example

    if field_type in DROPDOWN_FIELD_TYPES:
        template = _TYPE_DEFAULT_EXAMPLES["dropdown"]
    elif field_type == "date":
        template = _TYPE_DEFAULT_EXAMPLES["date"]
    elif field_type in ("number", "float"):
        template = _TYPE_DEFAULT_EXAMPLES["number"]
    else:
        template = _TYPE_DEFAULT_EXAMPLES["string"]
    return template.format(name=field_name)


def get_fallback_prompt(
    field_name: str,
    field_type: str = "string",
    options: Sequence[str] = (),
    min_length: int = DEFAULT_MIN_PROMPT_LENGTH,
) -> str:
    """
    Deterministic fallback prompt, always longer than min_length

    Raises:
        InputValidationError: If field_name is empty
    """
    if not field_name or not field_name.strip():
        raise InputValidationError("field_name is required to build a fallback prompt")

    prompt = get_example_prompt_for_field(field_name, field_type, options)
    index = 0
    while len(prompt) <= min_length:
        prompt = f"{prompt} {_PADDING_SENTENCES[index % len(_PADDING_SENTENCES)]}"
        index += 1
    return prompt


def get_field_guidance(field_name: str, field_type: str = "string") -> str | None:
    """Extra guidance for fields that are commonly misread"""
    lower_name = field_name.lower()

    if "counter party" in lower_name:
        return ('"Counter party" means the OTHER party in the agreement, not the company doing the '
                'extraction. In "Agreement between Company A and Company B", if Company A is extracting, '
                'Company B is the counter party.')
    if "end date" in lower_name:
        return ("End dates are often NOT explicitly stated. You may need to calculate "
                "Effective Date + Term = End Date.")
    if "termination" in lower_name and "convenience" in lower_name:
        return ('"For convenience" means WITHOUT needing a reason, cause or breach. This is different '
                'from "for cause" termination.')
    if "renewal" in lower_name:
        return ('Distinguish automatic renewal, manual renewal, evergreen and no renewal. Look for '
                '"automatically renew" vs "may renew" vs "shall not renew".')
    if "vendor" in lower_name or "supplier" in lower_name:
        return ('The vendor is the company SENDING the invoice. Do NOT confuse it with the "Bill To" '
                'customer who is receiving it.')
    if any(w in lower_name for w in ("amount", "total", "price", "cost")):
        return ('Extract the EXACT value including cents. Do NOT round. If the document shows '
                '"$1,234.99", return "1234.99".')
    if "freight" in lower_name or "shipping" in lower_name:
        return 'Freight shown as "$0.00", "Included" or "Prepaid" should be returned as "0", not "Not Present".'
    if "po number" in lower_name or "purchase order" in lower_name:
        return 'PO numbers are customer references, distinct from invoice numbers (often starting with "INV").'
    if "item" in lower_name and ("line" in lower_name or field_type == "multiSelect"):
        return ("Line items are the individual products or services in the invoice table. Do NOT "
                "include headers, subtotals, or tax lines.")
    return None


def infer_document_type(template_key: str | None, catalog: Catalog | None = None) -> str | None:
    """Document type hint for a template key, e.g. "invoices-2024" -> "Invoice" """
    return (catalog or Catalog()).infer_document_type(template_key)


def is_generic_prompt(prompt: str, min_length: int = DEFAULT_MIN_PROMPT_LENGTH) -> bool:
    """True when a prompt is too short or just "Extract the X" """
    text = prompt.strip()
    return len(text) < min_length or bool(_GENERIC_PROMPT_RE.match(text))


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def _truncate(text: str, max_length: int) -> str:
    if not text:
        return ""
    return text[:max_length] + "..." if len(text) > max_length else text


def build_synthesis_prompt(request: SynthesisRequest) -> str:
    """
    Build the prompt-generation request for one field

    Sections, in order: system prompt override, document type context, task
    (custom instructions or the default template with an example prompt),
    current prompt, failures, successes, dropdown guidance, previous
    attempts, field guidance, urgency, requirements, and the JSON reply
    instruction.
    """
    name = request.field_name
    current = request.current_prompt or f"Extract the {name}"
    parts: list[str] = []

    if request.system_prompt_override:
        parts.append(request.system_prompt_override.strip())
        parts.append("")

    if request.document_type or request.template_key:
        label = request.document_type or "this document type"
        parts.append("## DOCUMENT TYPE CONTEXT")
        if request.document_type:
            parts.append(f"Document Type: {request.document_type}")
        if request.template_key:
            parts.append(f'Template: "{request.template_key}"')
        parts.append("")
        parts.append(f"You are writing extraction prompts for {label} documents. Use your knowledge of "
                     f"how {label} documents are structured to decide WHERE \"{name}\" appears, WHAT "
                     f"labels are used for it, and WHICH sections to search.")
        parts.append("Do NOT use terminology from other document types.")
        parts.append("")

    if request.custom_instructions:
        parts.append(request.custom_instructions.strip())
        parts.append("")
        parts.append("## FIELD TO OPTIMIZE")
        parts.append(f'Field: "{name}" (type: {request.field_type})')
    else:
        example = get_example_prompt_for_field(name, request.field_type, request.options, request.company_name)
        parts.append("You are an expert at writing extraction prompts for document AI systems.")
        parts.append("")
        parts.append("## YOUR TASK")
        parts.append(f'Create a DETAILED extraction prompt for the field "{name}" (type: {request.field_type}).')
        if request.document_type:
            parts.append(f"Remember: this is for {request.document_type} documents.")
        parts.append("")
        parts.append("## EXAMPLE OF A HIGH-QUALITY PROMPT STRUCTURE")
        parts.append(f'"{example}"')
        parts.append("")
        parts.append("Notice how the example says WHERE to look, lists SPECIFIC phrases to search for, "
                     "fixes the EXACT output format, says what NOT to extract, and handles the "
                     "not-found case.")

    parts.append("")
    parts.append("## CURRENT PROMPT (NOT WORKING WELL)")
    parts.append(f'"{current}"')

    if request.failure_examples:
        parts.append("")
        parts.append("## FAILURES TO FIX")
        for i, example in enumerate(request.failure_examples[:3], start=1):
            parts.append(f'{i}. AI returned: "{_truncate(example.predicted, 80)}"')
            parts.append(f'   Should be: "{_truncate(example.expected, 80)}"')
        parts.append("Analyze WHY these failed. Common causes: wrong section, missing synonyms, format mismatch.")

    if request.success_examples:
        parts.append("")
        parts.append("## SUCCESSES (what's working)")
        parts.append(", ".join(f'"{_truncate(s.value, 60)}"' for s in request.success_examples[:2]))

    if request.field_type in DROPDOWN_FIELD_TYPES and request.options:
        sample = ", ".join(request.options[:3]) + (", ..." if len(request.options) > 3 else "")
        parts.append("")
        parts.append("## DROPDOWN/ENUM FIELD GUIDANCE")
        parts.append(f"This is a dropdown field with predefined options (examples: {sample}).")
        parts.append("The prompt should tell the AI to return EXACTLY one of the available options, "
                     "without listing them all (they are provided at extraction time).")

    if request.previous_prompts and request.iteration > 1:
        parts.append("")
        parts.append("## PREVIOUS ATTEMPTS (didn't reach the target)")
        for i, previous in enumerate(list(request.previous_prompts)[-2:], start=1):
            parts.append(f'{i}. "{_truncate(previous, 100)}"')
        parts.append("Try a DIFFERENT approach than these.")

    guidance = get_field_guidance(name, request.field_type)
    if guidance:
        parts.append("")
        parts.append("## FIELD-SPECIFIC GUIDANCE")
        parts.append(guidance)

    if request.iteration >= 3:
        parts.append("")
        parts.append(f"ITERATION {request.iteration}/{request.max_iterations} - previous approaches failed. "
                     f"Try something significantly different!")

    parts.append("")
    parts.append("## REQUIREMENTS FOR YOUR NEW PROMPT")
    parts.append(f'1. Be SPECIFIC - don\'t just say "Extract the {name}"')
    parts.append("2. Tell the AI WHERE to look (which sections of the document)")
    parts.append("3. List 3-5 SYNONYM phrases the value might appear as")
    parts.append("4. Specify the EXACT output format (date format, case, etc.)")
    parts.append('5. Add "Do NOT..." guidance to prevent common mistakes')
    parts.append('6. Handle the "not found" case explicitly')
    parts.append("")
    parts.append("## RESPOND WITH VALID JSON ONLY")
    parts.append('{"newPrompt": "your detailed extraction prompt here", "reasoning": "why this will fix the failures"}')
    parts.append("Do NOT include any text before or after the JSON.")

    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def _first_string(data: dict, keys: Sequence[str]) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _regex_field(text: str, keys: Sequence[str]) -> str | None:
    for key in keys:
        match = re.search(rf'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"', text)
        if match:
            return match.group(1).replace('\\"', '"').replace("\\n", " ").strip()
    return None


def _fallback(field_name: str, field_type: str, min_length: int, why: str) -> SynthesisResult:
    logger.warning("Using fallback prompt for %s: %s", field_name, why)
    return SynthesisResult(
        new_prompt=get_fallback_prompt(field_name, field_type, min_length=min_length),
        reasoning=f"Used fallback prompt because {why}",
        used_fallback=True,
    )


def parse_synthesis_response(
    response: str | None,
    field_name: str,
    field_type: str = "string",
    min_length: int = DEFAULT_MIN_PROMPT_LENGTH,
) -> SynthesisResult:
    """
    Parse a prompt-generation reply

    Args:
        response: Raw model reply
        field_name: Field name, needed to build the fallback prompt
        field_type: Field type, used by the fallback prompt
        min_length: Minimum accepted prompt length

    Returns:
        SynthesisResult (used_fallback=True when the reply was unusable)

    Raises:
        InputValidationError: If field_name is empty
    """
    if not field_name or not field_name.strip():
        raise InputValidationError("field_name is required to parse a synthesis response")

    text = _CODE_FENCE_RE.sub("", (response or "").strip()).strip()
    if not text:
        return _fallback(field_name, field_type, min_length, "the response was empty")

    prompt: str | None = None
    reasoning: str | None = None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.debug("Synthesis reply is not JSON, trying pattern extraction")
        parsed = None

    if isinstance(parsed, dict):
        prompt = _first_string(parsed, PROMPT_KEYS)
        reasoning = _first_string(parsed, REASONING_KEYS)
    else:
        prompt = _regex_field(text, PROMPT_KEYS)
        reasoning = _regex_field(text, REASONING_KEYS)

    if prompt is None:
        return _fallback(field_name, field_type, min_length, "the response could not be parsed")
    if is_generic_prompt(prompt, min_length):
        return _fallback(
            field_name, field_type, min_length,
            f'the generated prompt was too generic ({len(prompt)} chars): "{prompt[:50]}"',
        )

    return SynthesisResult(new_prompt=prompt, reasoning=reasoning or "No reasoning provided")
