"""Feedback phrase tables.

Phrases shown after a miss must stay supportive: they never use the
words listed in FORBIDDEN_WORDS.
"""

FORBIDDEN_WORDS = ("wrong", "incorrect", "fail", "failed", "mistake", "bad")

CORRECT_GENERAL = [
    "Great listening!",
    "You caught that!",
    "Nice work!",
    "You're really hearing the difference",
    "You're getting good at this",
    "You nailed it!",
    "Well done!",
    "You got it!",
]

# Milestone streak -> phrase
STREAK_MESSAGES = {
    3: "Three in a row!",
    5: "You're on a roll!",
    7: "Seven correct! You're mastering this!",
    10: "Ten in a row! Excellent!",
    15: "Fifteen! You're on fire!",
}

SUPPORTIVE_GENERAL = [
    "That one is tricky, let's hear it again",
    "These sounds are really similar, listen closely",
    "Good try! Want to hear the difference?",
    "Let's break that down together",
    "These are tough to tell apart, try again",
    "Listen carefully to the difference",
    "That's a challenging one, let's practice",
    "You're building your listening skills",
]

# (phoneme, phoneme) -> targeted explanation and articulation tip
SOUND_PAIR_FEEDBACK = {
    ("θ", "f"): {
        "message": "These both use your teeth, but /θ/ uses your tongue too",
        "tip": 'For the "th" sound, put your tongue between your teeth',
    },
    ("b", "d"): {
        "message": "Try feeling where your tongue is for each sound",
        "tip": "/b/ uses your lips, /d/ uses your tongue on the roof of your mouth",
    },
    ("m", "n"): {
        "message": "Both are hummed through your nose",
        "tip": "/m/ closes your lips, /n/ opens your mouth",
    },
    ("p", "b"): {
        "message": "Both use your lips, but only one is voiced",
        "tip": "Feel your throat for /b/, it vibrates",
    },
    ("t", "d"): {
        "message": "Both use your tongue behind your teeth",
        "tip": "/d/ makes your throat vibrate, /t/ doesn't",
    },
    ("k", "g"): {
        "message": "Both use the back of your tongue",
        "tip": "/g/ vibrates your throat, /k/ doesn't",
    },
    ("f", "v"): {
        "message": "Both use your teeth on your lip",
        "tip": "/v/ vibrates your throat, /f/ doesn't",
    },
    ("s", "z"): {
        "message": "Both make a hissing sound",
        "tip": "/z/ vibrates like a buzzing bee",
    },
}

ENCOURAGEMENT = [
    "You're building your listening skills",
    "Every practice makes you stronger",
    "These sounds take time, and you're doing great",
    "You're training your brain to hear differences",
    "Keep going, you've got this",
    "Practice makes progress!",
    "You're getting better with each try",
]

HINTS = {
    1: [
        "Listen for the first sound",
        "Pay attention to where your tongue goes",
        "Notice which part of your mouth makes the sound",
    ],
    2: [
        "Try saying both words out loud",
        "Feel the difference in your mouth",
        "One sound might feel more in the front of your mouth",
    ],
    3: [
        "Let me play both words for you to compare",
        "Here's what makes them different",
        "Watch where the sound is made",
    ],
}
