"""TutorMarket booking lifecycle and settlement backend."""
