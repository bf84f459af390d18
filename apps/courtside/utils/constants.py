"""
Constants used across the skill score ledger and friendship graph.
"""

import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

# Skill score ledger
INITIAL_SKILL_SCORE = 0.0
SKILL_SCORE_DELTA = float(os.getenv("SKILL_SCORE_DELTA", "10"))  # zero-sum points moved per reported match
STAT_EXPIRATION = timedelta(days=365)  # each stat expires a fixed year after it was reported

# Post content that reports a win against the collaborator
WIN_TOKEN = "win"
