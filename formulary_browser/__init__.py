"""Streamlit preview of how procedure HTML converts to stored rich-text documents."""
