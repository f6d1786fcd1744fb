"""Qt online repository catalog: identifiers, Updates.xml parsing and URL layout."""
