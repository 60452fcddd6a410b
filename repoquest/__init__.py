"""repoquest: step-by-step programming quests delivered through git and GitHub."""

__version__ = "0.3.0"
