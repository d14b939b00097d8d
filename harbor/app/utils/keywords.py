import re
from sklearn.feature_extraction.text import TfidfVectorizer, ENGLISH_STOP_WORDS

# Filler that dominates spoken transcripts
TRANSCRIPT_STOP_WORDS = ['user', 'assistant', 'sure', 'yes', 'no', 'okay', 'thanks', 'think',
                         'like', 'just', 'im', 'know', 'really', 'yeah', 'um', 'uh', 'feel']


def generate_topic(texts: list[str], num_keywords: int = 3) -> str | None:
    """Derives a short conversation topic from message texts using TF-IDF.

    Each message is treated as its own document so words that recur across
    the conversation rank above one-off phrases.

    Args:
        texts: Message contents in conversation order.
        num_keywords: The maximum number of keywords to return.

    Returns:
        Top keywords separated by commas, or None if input is insufficient.
    """
    texts = [text for text in texts if text and text.strip()]
    if len(texts) < 2:
        return None

    processed_texts = [re.sub(r'[^\w\s]', '', text.lower()) for text in texts]

    try:
        vectorizer = TfidfVectorizer(stop_words=list(ENGLISH_STOP_WORDS) + TRANSCRIPT_STOP_WORDS,
                                     max_features=50)
        tfidf_matrix = vectorizer.fit_transform(processed_texts)
    except ValueError:
        # Vocabulary is empty after stop word removal
        return None

    feature_names = vectorizer.get_feature_names_out()
    scores = tfidf_matrix.sum(axis=0).A1
    sorted_indices = scores.argsort()[::-1]
    top_keywords = [feature_names[i] for i in sorted_indices[:num_keywords] if scores[i] > 0.1]

    return ', '.join(top_keywords) if top_keywords else None
