"""External providers: LLMs and mapping suggestion sources"""
