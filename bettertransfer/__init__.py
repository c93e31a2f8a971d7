"""bettertransfer

Transfer Ready Assistant: a chat API that lets an LLM call transfer,
internship, and mentorship lookup tools on behalf of community college
students.
"""

__version__ = "0.1.0"
