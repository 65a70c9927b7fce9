"""Keyword tables for severity tiers, escalation signals, voice SOS and alert confirmation.

Tables are immutable; a classifier takes a KeywordTables instance so locale variants
can be injected without touching module state.
"""

from dataclasses import dataclass

from severity.models import EscalationSignal, SeverityLevel

LOW_KEYWORDS = (
    "joke", "comment", "uncomfortable", "awkward", "stared", "ignored",
    "remark", "glance", "teased", "annoyed",
)
MEDIUM_KEYWORDS = (
    "repeated", "shouted", "insulted", "pressured", "scared", "humiliated",
    "yelled", "mocked", "targeted", "bullied", "harassed", "belittled",
    "embarrassed", "cornered",
)
HIGH_KEYWORDS = (
    "touch", "touched", "touching", "follow", "followed", "following",
    "threaten", "threatened", "threat", "force", "forced", "forcing",
    "sexual", "sexually", "blackmail", "blackmailed", "manager",
    "supervisor", "senior", "boss", "groped", "grabbed", "coerced",
    "quid pro quo", "promotion", "appraisal",
)
CRITICAL_KEYWORDS = (
    "rape", "raped", "assault", "assaulted", "locked", "violence",
    "violent", "suicide", "suicidal", "kill", "killed", "murder",
    "stalked daily", "stalking", "stalked", "abuse", "abused",
    "molested", "molestation", "drugged", "kidnapped", "trapped",
    "life threat", "death threat",
)

POWER_IMBALANCE_KEYWORDS = (
    "manager", "senior", "supervisor", "boss", "lead", "director",
    "head", "ceo", "cto", "vp", "team lead", "reporting",
)
REPETITION_KEYWORDS = (
    "repeated", "repeatedly", "again", "multiple times", "every day",
    "daily", "ongoing", "continuous", "always", "keeps", "won't stop",
    "doesn't stop", "pattern", "regular", "frequent",
)
THREAT_KEYWORDS = (
    "threaten", "threatened", "threat", "fire me", "terminate",
    "appraisal", "promotion", "transfer", "consequences", "warned",
    "retaliation", "punish", "blacklist",
)
EMOTIONAL_DISTRESS_KEYWORDS = (
    "fear", "afraid", "panic", "trauma", "traumatized", "crying",
    "depressed", "anxious", "terrified", "nightmare", "can't sleep",
    "helpless", "hopeless", "ashamed", "breakdown", "mental health",
    "suicidal", "self-harm",
)
PHYSICAL_HARM_KEYWORDS = (
    "hit", "slap", "slapped", "punch", "punched", "kick", "kicked",
    "pushed", "shoved", "choked", "bruise", "injury", "injured",
    "bleeding", "hospital", "assault", "violence", "physical",
)

# Spoken on the voice channel these dispatch an alert without confirmation.
VOICE_EMERGENCY_KEYWORDS = (
    "help me",
    "i am in danger",
    "save me",
    "emergency",
    "somebody help",
    "please help",
    "call the police",
    "i need help",
    "bachao",      # Hindi: "save me"
    "madad karo",  # Hindi: "help me"
)

CONFIRMATION_WORDS = ("yes", "help", "alert", "send", "haan", "ha", "please", "do it", "confirm")


@dataclass(frozen=True)
class KeywordTables:
    low: tuple = LOW_KEYWORDS
    medium: tuple = MEDIUM_KEYWORDS
    high: tuple = HIGH_KEYWORDS
    critical: tuple = CRITICAL_KEYWORDS
    power_imbalance: tuple = POWER_IMBALANCE_KEYWORDS
    repetition: tuple = REPETITION_KEYWORDS
    threat: tuple = THREAT_KEYWORDS
    emotional_distress: tuple = EMOTIONAL_DISTRESS_KEYWORDS
    physical_harm: tuple = PHYSICAL_HARM_KEYWORDS

    def tiers(self) -> dict:
        return {
            SeverityLevel.LOW: self.low,
            SeverityLevel.MEDIUM: self.medium,
            SeverityLevel.HIGH: self.high,
            SeverityLevel.CRITICAL: self.critical,
        }

    def signals(self) -> dict:
        return {
            EscalationSignal.POWER_IMBALANCE: self.power_imbalance,
            EscalationSignal.REPETITION: self.repetition,
            EscalationSignal.THREAT: self.threat,
            EscalationSignal.EMOTIONAL_DISTRESS: self.emotional_distress,
            EscalationSignal.PHYSICAL_HARM: self.physical_harm,
        }


DEFAULT_TABLES = KeywordTables()
