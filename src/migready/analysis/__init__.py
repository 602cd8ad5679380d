"""Pure analyses over an inventory snapshot."""
