"""Utterance interpretation.

The intent layer turns a Spanish transcript into one `Intent` plus a typed `SlotSet`, using ordered
rule tables first and an optional LLM collaborator where the rules are silent.
"""
