"""
FireWatch Reports - Constants
Decision thresholds and limits shared across the report pipeline.
"""

# Minimum incident confidence for automatic acceptance
ACCEPT_CONFIDENCE_THRESHOLD = 0.70

# Reason given when a rejected verdict carries no explanation
DEFAULT_REJECTION_REASON = "Image did not meet submission requirements"

# Prefix for reasons recorded when the classifier call fails
VERIFICATION_FAILURE_PREFIX = "Verification failed: "

# Classifier output bounds
MAX_REASONS = 10
MAX_REASON_LENGTH = 200
RAW_SNIPPET_LENGTH = 200

# Required submission fields (form names)
REQUIRED_REPORT_FIELDS = (
    "title",
    "description",
    "severity",
    "lat",
    "lng",
    "deviceName",
    "deviceTime",
)

# Coordinate bounds
LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)

# Instruction sent to the vision classifier with every image
VERIFICATION_PROMPT = """
You are a validation classifier for a wildfire incident reporting app.
Look at the image and decide:
1) Does it show visible fire or smoke consistent with a real fire incident?
2) Does the image look AI-generated, edited or otherwise synthetic? (best effort)

Answer ONLY with a JSON object using exactly these keys:
{
  "isIncident": boolean,
  "incidentConfidence": number,
  "suspectedSynthetic": boolean,
  "syntheticConfidence": number,
  "reasons": string[]
}

Rules:
- Confidence values range from 0.0 to 1.0
- reasons are short phrases, at most 10
- When unsure, lower the confidence and say why in reasons
""".strip()
