"""
Locale-specific prompt templates, fallback replies and default titles.

Every table is keyed by locale ('en' / 'ar'); response tables are keyed by
intent value first.
"""
import logging
from langchain_core.prompts import PromptTemplate


logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = ("en", "ar")
FALLBACK_LOCALE = "en"


def resolve_locale(locale: str | None) -> str:
    """Return a supported locale, falling back to English with a warning"""
    normalized = (locale or "").strip().lower()
    if normalized in SUPPORTED_LOCALES:
        return normalized
    logger.warning("Unsupported locale %r, defaulting to %s", locale, FALLBACK_LOCALE)
    return FALLBACK_LOCALE


CLASSIFIER_PROMPTS = {
    "en": """Analyze this user message and classify the intent. Return ONLY one word from these options:
- casual: General conversation, greetings, jokes, small talk
- technical: Programming, development, specific technical questions
- summary: User wants to see their conversation summary or history
- help: User needs help or assistance with the system

User message: "{message}"

Intent:""",
    "ar": """حلل رسالة المستخدم التالية وحدد القصد منها. أرجع كلمة واحدة فقط باللغة الإنجليزية من الخيارات التالية:
- casual: محادثة عامة، تحيات، حديث اجتماعي
- technical: أسئلة برمجة وتطوير وتقنية
- summary: طلب ملخص المحادثات أو استعراض السجل
- help: طلب المساعدة أو شرح النظام

رسالة المستخدم: "{message}"

القصد:""",
}


RESPONSE_PROMPTS = {
    "casual": {
        "en": """You are a friendly AI assistant having a casual conversation. Be warm, engaging, and natural.
Keep responses conversational and helpful.

Previous context: {context}
User message: {message}

Response:""",
        "ar": """أنت مساعد ذكي ودود تجري محادثة عادية. كن لطيفاً ومهذباً واستخدم العربية الفصحى بأسلوب قريب.

السياق السابق: {context}
رسالة المستخدم: {message}

الرد:""",
    },
    "technical": {
        "en": """You are an expert technical assistant. Provide detailed, accurate technical information.
Use examples, code snippets when relevant, and be thorough in your explanations.

Previous context: {context}
User message: {message}

Technical Response:""",
        "ar": """أنت مساعد تقني خبير. قدم معلومات تقنية دقيقة ومفصلة باللغة العربية الفصحى،
واستخدم الأمثلة ومقاطع الكود عند الحاجة.

السياق السابق: {context}
استفسار المستخدم: {message}

الرد التقني:""",
    },
    "summary": {
        "en": """Create a comprehensive summary of the user's conversation history and interests.
Focus on key topics discussed, preferences shown, and patterns in their questions.

Conversation history: {history}
User message: {message}

Summary:""",
        "ar": """أنشئ ملخصاً شاملاً لسجل محادثات المستخدم واهتماماته باللغة العربية الفصحى.
ركز على المواضيع الرئيسية والتفضيلات وأنماط الأسئلة.

سجل المحادثات: {history}
طلب المستخدم: {message}

الملخص:""",
    },
    "help": {
        "en": """You are a helpful system assistant. Provide clear guidance about the chatbot features and capabilities.
Be informative about available features and how to use the system effectively.

Available features:
- Multi-language support (English/Arabic)
- Conversation memory and history
- User summaries
- Technical and casual conversation modes

User message: {message}

Help Response:""",
        "ar": """أنت مساعد نظام مفيد. قدم إرشادات واضحة حول ميزات المساعد الذكي وطريقة استخدامه.

الميزات المتاحة:
- دعم اللغتين العربية والإنجليزية
- ذاكرة المحادثة وسجل التفاعلات
- ملخصات شخصية للمستخدم
- أنماط للمحادثة التقنية والعادية

استفسار المستخدم: {message}

رد المساعدة:""",
    },
}


FALLBACK_RESPONSES = {
    "casual": {
        "en": "Sorry, I encountered an error processing your message.",
        "ar": "أعتذر عن هذا الخطأ التقني. يرجى إعادة المحاولة أو صياغة السؤال بطريقة مختلفة.",
    },
    "technical": {
        "en": "Sorry, I cannot process your technical query at the moment.",
        "ar": "أعتذر، واجهت صعوبة تقنية في معالجة استفسارك. أرجو المحاولة مرة أخرى.",
    },
    "summary": {
        "en": "Sorry, I cannot generate a summary at the moment.",
        "ar": "أعتذر، لا أستطيع إعداد الملخص في هذه اللحظة. أرجو المحاولة لاحقاً.",
    },
    "help": {
        "en": "Sorry, I cannot provide help at the moment.",
        "ar": "أعتذر، أواجه صعوبة في تقديم المساعدة الآن. أرجو المحاولة مرة أخرى.",
    },
}


# Direct chat skips classification and talks to a caller-chosen model.
DIRECT_PROMPTS = {
    "en": """You are a helpful AI assistant. Answer the user's message clearly and concisely.

Conversation so far: {context}
User message: {message}

Response:""",
    "ar": """أنت مساعد ذكي مفيد. أجب عن رسالة المستخدم بوضوح وإيجاز باللغة العربية الفصحى.

المحادثة حتى الآن: {context}
رسالة المستخدم: {message}

الرد:""",
}


DIRECT_FALLBACK_RESPONSES = {
    "en": "I apologize, but I encountered an error while processing your message. Please try again.",
    "ar": "عذراً، حدث خطأ أثناء معالجة رسالتك. يرجى المحاولة مرة أخرى.",
}


DEFAULT_TITLES = {
    "en": "New Conversation",
    "ar": "محادثة جديدة",
}


EMPTY_MESSAGE_ERRORS = {
    "en": "Message is required",
    "ar": "الرسالة مطلوبة",
}


SYSTEM_MESSAGES = {
    "en": "Always answer in English.",
    "ar": "أجب دائماً باللغة العربية.",
}


def classifier_prompt(locale: str) -> PromptTemplate:
    return PromptTemplate.from_template(CLASSIFIER_PROMPTS[resolve_locale(locale)])


def response_prompt(intent: str, locale: str) -> PromptTemplate:
    return PromptTemplate.from_template(RESPONSE_PROMPTS[intent][resolve_locale(locale)])


def fallback_response(intent: str, locale: str) -> str:
    return FALLBACK_RESPONSES[intent][resolve_locale(locale)]


def default_title(locale: str) -> str:
    return DEFAULT_TITLES.get(locale, DEFAULT_TITLES[FALLBACK_LOCALE])


def direct_prompt(locale: str) -> PromptTemplate:
    return PromptTemplate.from_template(DIRECT_PROMPTS[resolve_locale(locale)])


def direct_fallback_response(locale: str) -> str:
    return DIRECT_FALLBACK_RESPONSES[resolve_locale(locale)]
