"""Static data bundled with the example provider."""

TITLES = [
    ("dune", "Dune", "Movie"),
    ("dune-part-two", "Dune: Part Two", "Movie"),
    ("the-expanse", "The Expanse", "TvSeries"),
    ("cowboy-bebop", "Cowboy Bebop", "Anime"),
]
