"""Events Queue drain worker."""
