"""
Canonical subject keyword/pattern profiles.

Order matters: it is the tie-break priority used by SubjectClassifier.
Reading-comprehension cues live under english-language, where those
questions belong.
"""

# Each profile: slug -> keywords (substring match) and patterns (regex, weight 2).
# Text is lower-cased before matching, so everything here is lower-case.
DEFAULT_SUBJECT_PROFILES = [
    {
        "slug": "mathematics",
        "name": "Mathematics",
        "keywords": [
            "solve", "calculate", "equation", "formula", "number", "algebra",
            "geometry", "trigonometry", "logarithm", "function", "derivative",
            "integral", "matrix", "vector", "polynomial", "fraction", "decimal",
            "percentage", "ratio", "proportion", "angle", "triangle", "circle",
            "square", "rectangle", "volume", "area", "perimeter", "radius",
            "diameter", "circumference", "cosine", "tangent", "factorial",
            "permutation", "combination", "probability", "statistics",
            "median", "standard deviation", "find the value", "factorize",
        ],
        "patterns": [
            r"\d+[+\-*/]\d+",
            r"x\s*[+\-*/=]",
            r"\d+x",
            r"\^\d+",
            r"\d+\.\d+",
            r"\d+%",
        ],
    },
    {
        "slug": "english-language",
        "name": "English Language",
        "keywords": [
            "grammar", "sentence", "verb", "noun", "adjective", "adverb", "tense",
            "clause", "phrase", "punctuation", "pronoun", "preposition",
            "conjunction", "article", "predicate", "passive", "plural", "singular",
            "past tense", "present tense", "future tense", "gerund", "participle",
            "infinitive", "syllable", "vowel", "consonant", "phoneme", "morpheme",
            "syntax", "semantics", "synonym", "antonym", "opposite in meaning",
            "nearest in meaning",
            # reading comprehension
            "passage", "paragraph", "comprehension", "according to", "the writer",
            "main idea", "inference",
        ],
        "patterns": [
            r"choose the correct",
            r"identify the",
            r"what is the.*of.*word",
            r"complete the sentence",
            r"fill in the blank",
            r"according to the passage",
            r"the passage suggests",
            r"the main idea",
            r"the best title",
        ],
    },
    {
        "slug": "literature-in-english",
        "name": "Literature in English",
        "keywords": [
            "novel", "character", "narrator", "plot", "theme", "author",
            "protagonist", "antagonist", "setting", "metaphor", "symbolism",
            "irony", "allegory", "personification", "simile", "alliteration",
            "rhyme", "stanza", "verse", "prose", "poetry", "poem", "drama",
            "tragedy", "comedy", "soliloquy", "monologue", "dialogue",
            "flashback", "foreshadowing", "climax", "conflict",
        ],
        "patterns": [
            r"in the novel",
            r"the author",
            r"the character",
            r"the protagonist",
            r"the story",
            r"in the play",
            r"the poet",
        ],
    },
]
