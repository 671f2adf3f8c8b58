"""Prompt templates for listing enrichment."""

import json

PROMPT_VERSION = "1.0"

# Breed vocabulary the models must choose from
BREEDS = [
    # Shepherds
    "german_shepherd",
    "belgian_shepherd",
    "tatra_shepherd",
    "shetland_sheepdog",
    # Popular large
    "labrador",
    "golden_retriever",
    "husky",
    "malamute",
    "saint_bernard",
    "newfoundland",
    "great_dane",
    "rottweiler",
    "doberman",
    "boxer",
    "amstaff",
    "pitbull",
    "cane_corso",
    "akita",
    # Popular medium
    "border_collie",
    "beagle",
    "cocker_spaniel",
    "springer_spaniel",
    "setter",
    "pointer",
    "bulldog",
    "basenji",
    "shiba",
    "chow_chow",
    "shar_pei",
    "dalmatian",
    # Popular small
    "dachshund",
    "jack_russell",
    "fox_terrier",
    "west_highland_terrier",
    "yorkshire_terrier",
    "maltese",
    "shih_tzu",
    "pekingese",
    "pug",
    "french_bulldog",
    "chihuahua",
    "pomeranian",
    "cavalier",
    "bichon",
    "poodle",
    "miniature_schnauzer",
    # Polish hounds
    "polish_hound",
    "polish_hunting_dog",
    "polish_greyhound",
    # Catch-all
    "mutt",
    "mixed",
    "unknown",
]

TEXT_EXTRACTION_INSTRUCTIONS = "Extract structured data from the adoption listing. Return valid JSON only."

TEXT_EXTRACTION_PROMPT = """You are reading an adoption listing for a shelter dog.
Extract the facts it states. Use null for anything the text does not say;
never guess health flags or compatibility.

Return a JSON object with exactly these keys:
- "name": string or null
- "sex": "male" | "female" | "unknown" | null
- "age_estimate": {{"months": int, "confidence": 0-1, "range_min": int, "range_max": int}} or null
- "breed_estimates": list of {{"breed": <breed>, "confidence": 0-1}}, most likely first
- "size_estimate": {{"value": "small" | "medium" | "large", "confidence": 0-1}} or null
- "weight_estimate": {{"kg": number, "confidence": 0-1, "range_min": number, "range_max": number}} or null
- "personality_tags": list of short lowercase tags (e.g. "calm", "playful", "shy")
- "vaccinated", "sterilized", "chipped": boolean or null
- "good_with_kids", "good_with_dogs", "good_with_cats": boolean or null
- "location_hints": {{"is_foster": boolean or null, "city_mention": string or null}}
- "urgent": boolean, true only if the text says the dog needs a home urgently

Allowed breeds: {breed_list}

Listing:
---
{raw_description}
---"""

PHOTO_ANALYSIS_INSTRUCTIONS = "Describe the dog in the photos. Return valid JSON only."

PHOTO_ANALYSIS_PROMPT = """These photos show one shelter dog. Estimate its visible traits.

Return a JSON object with exactly these keys:
- "breed_estimates": list of {{"breed": <breed>, "confidence": 0-1}}, most likely first
- "size_estimate": {{"value": "small" | "medium" | "large", "confidence": 0-1}} or null
- "age_category": "puppy" | "young" | "adult" | "senior" | null
- "fur_length": "short" | "medium" | "long" | null
- "fur_type": "smooth" | "wire" | "curly" | "double" | null
- "color_primary": string or null
- "color_secondary": string or null
- "color_pattern": "solid" | "spotted" | "brindle" | "merle" | "bicolor" | "tricolor" | "sable" | "tuxedo" | null
- "ear_type": "floppy" | "erect" | "semi" | null
- "tail_type": "long" | "short" | "docked" | "curled" | null

Allowed breeds: {breed_list}"""

BIO_INSTRUCTIONS = "Generate a warm, engaging dog bio in Polish. Return valid JSON only."

BIO_PROMPT = """Write a short adoption bio (3-5 sentences) for this dog, based only on
the data below. Do not invent health facts or compatibility.

Return a JSON object: {{"bio": string, "tone": "hopeful" | "urgent" | "gentle"}}

Dog data:
{dog_data}"""


def build_text_extraction_prompt(raw_description: str) -> str:
    """Build the text extraction prompt for one listing description."""
    return TEXT_EXTRACTION_PROMPT.format(
        breed_list=", ".join(BREEDS),
        raw_description=raw_description,
    )


def build_photo_analysis_prompt() -> str:
    return PHOTO_ANALYSIS_PROMPT.format(breed_list=", ".join(BREEDS))


def build_bio_prompt(dog_data: dict) -> str:
    return BIO_PROMPT.format(dog_data=json.dumps(dog_data, indent=2, ensure_ascii=False))
