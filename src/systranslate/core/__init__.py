"""Core building blocks shared by every systranslate subsystem."""
