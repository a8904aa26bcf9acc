"""Cloud provider access and polling helpers."""
