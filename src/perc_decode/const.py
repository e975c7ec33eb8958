ERRORS = {
  "E_TOO_SHORT": "Buffer shorter than the section being read",
  "E_BAD_SIGNATURE": "Buffer does not carry the expected magic",
  "E_UNSUPPORTED_VERSION": "Format version not supported by this decoder",
  "E_INDEX_RANGE": "Slot index beyond the buffer's account capacity",
}
