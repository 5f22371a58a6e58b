# Serial output to the guidance display.
